"""Sandboxed formula language for calculated field values.

Formulas are parsed by a small recursive-descent parser into an AST and
interpreted here; nothing ever reaches ``eval``. The language covers
arithmetic and comparison over literals and named field references:

    price * quantity
    {unit-cost} * 1.2 + shipping
    (score >= 50) and not disqualified
    first_name + " " + last_name

Field references are bare identifiers, or any field id wrapped in braces
when it contains characters an identifier cannot.
"""

from __future__ import annotations

import functools
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from formctl.domain.values import to_number

MAX_FORMULA_LENGTH = 1000
MAX_NESTING_DEPTH = 50

_KEYWORDS = frozenset({"and", "or", "not", "true", "false", "null"})

_TOKEN_RE = re.compile(
    r"""
      (?P<ws>\s+)
    | (?P<number>\d+(?:\.\d*)?(?:[eE][-+]?\d+)?|\.\d+(?:[eE][-+]?\d+)?)
    | (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
    | (?P<braced>\{[^{}]+\})
    | (?P<name>[A-Za-z_][A-Za-z0-9_]*)
    | (?P<op>==|!=|<=|>=|[-+*/%<>()])
    """,
    re.VERBOSE,
)

_STRING_ESCAPE_RE = re.compile(r"\\(.)")


class FormulaError(ValueError):
    """Raised when a formula cannot be parsed or evaluated."""


# ---------------------------------------------------------------------------
# Tokens and AST
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class _Token:
    kind: str  # number | string | ref | keyword | op | end
    text: str
    pos: int
    value: Any = None


@dataclass(frozen=True, slots=True)
class Constant:
    value: Any


@dataclass(frozen=True, slots=True)
class FieldRef:
    field_id: str


@dataclass(frozen=True, slots=True)
class Unary:
    op: str
    operand: Node


@dataclass(frozen=True, slots=True)
class Binary:
    op: str
    left: Node
    right: Node


type Node = Constant | FieldRef | Unary | Binary


def _tokenize(text: str) -> list[_Token]:
    tokens: list[_Token] = []
    pos = 0
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            msg = f"Unexpected character {text[pos]!r} at position {pos}"
            raise FormulaError(msg)
        kind = match.lastgroup
        raw = match.group()
        if kind == "number":
            value: Any = float(raw) if any(c in raw for c in ".eE") else int(raw)
            tokens.append(_Token("number", raw, pos, value))
        elif kind == "string":
            tokens.append(_Token("string", raw, pos, _STRING_ESCAPE_RE.sub(r"\1", raw[1:-1])))
        elif kind == "braced":
            field_id = raw[1:-1].strip()
            if not field_id:
                msg = f"Empty field reference at position {pos}"
                raise FormulaError(msg)
            tokens.append(_Token("ref", raw, pos, field_id))
        elif kind == "name":
            if raw in _KEYWORDS:
                tokens.append(_Token("keyword", raw, pos))
            else:
                tokens.append(_Token("ref", raw, pos, raw))
        elif kind == "op":
            tokens.append(_Token("op", raw, pos))
        pos = match.end()
    tokens.append(_Token("end", "", pos))
    return tokens


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

_COMPARISON_OPS = frozenset({"==", "!=", "<", "<=", ">", ">="})


class _Parser:
    """Recursive-descent parser. Precedence, loosest first:

    or, and, not, comparison, + -, * / %, unary - +, primary.
    """

    def __init__(self, tokens: list[_Token]) -> None:
        self._tokens = tokens
        self._index = 0
        self._depth = 0
        self.references: set[str] = set()

    @property
    def _current(self) -> _Token:
        return self._tokens[self._index]

    def _advance(self) -> _Token:
        token = self._tokens[self._index]
        self._index += 1
        return token

    def _accept(self, kind: str, text: str) -> bool:
        token = self._current
        if token.kind == kind and token.text == text:
            self._index += 1
            return True
        return False

    def parse(self) -> Node:
        node = self._or()
        if self._current.kind != "end":
            token = self._current
            msg = f"Unexpected {token.text!r} at position {token.pos}"
            raise FormulaError(msg)
        return node

    def _nested(self, parse: Callable[[], Node]) -> Node:
        self._depth += 1
        if self._depth > MAX_NESTING_DEPTH:
            msg = "Formula is nested too deeply"
            raise FormulaError(msg)
        try:
            return parse()
        finally:
            self._depth -= 1

    def _or(self) -> Node:
        node = self._and()
        while self._accept("keyword", "or"):
            node = Binary("or", node, self._and())
        return node

    def _and(self) -> Node:
        node = self._not()
        while self._accept("keyword", "and"):
            node = Binary("and", node, self._not())
        return node

    def _not(self) -> Node:
        if self._accept("keyword", "not"):
            return Unary("not", self._nested(self._not))
        return self._comparison()

    def _comparison(self) -> Node:
        node = self._additive()
        token = self._current
        if token.kind == "op" and token.text in _COMPARISON_OPS:
            self._advance()
            node = Binary(token.text, node, self._additive())
            after = self._current
            if after.kind == "op" and after.text in _COMPARISON_OPS:
                msg = f"Chained comparison at position {after.pos}; use 'and'"
                raise FormulaError(msg)
        return node

    def _additive(self) -> Node:
        node = self._term()
        while self._current.kind == "op" and self._current.text in ("+", "-"):
            op = self._advance().text
            node = Binary(op, node, self._term())
        return node

    def _term(self) -> Node:
        node = self._unary()
        while self._current.kind == "op" and self._current.text in ("*", "/", "%"):
            op = self._advance().text
            node = Binary(op, node, self._unary())
        return node

    def _unary(self) -> Node:
        token = self._current
        if token.kind == "op" and token.text in ("-", "+"):
            self._advance()
            return Unary(token.text, self._nested(self._unary))
        return self._primary()

    def _primary(self) -> Node:
        token = self._advance()
        if token.kind in ("number", "string"):
            return Constant(token.value)
        if token.kind == "ref":
            self.references.add(token.value)
            return FieldRef(token.value)
        if token.kind == "keyword" and token.text in ("true", "false", "null"):
            return Constant({"true": True, "false": False, "null": None}[token.text])
        if token.kind == "op" and token.text == "(":
            node = self._nested(self._or)
            if not self._accept("op", ")"):
                msg = f"Expected ')' at position {self._current.pos}"
                raise FormulaError(msg)
            return node
        if token.kind == "end":
            msg = "Unexpected end of formula"
            raise FormulaError(msg)
        msg = f"Unexpected {token.text!r} at position {token.pos}"
        raise FormulaError(msg)


# ---------------------------------------------------------------------------
# Interpreter
# ---------------------------------------------------------------------------


def _operand(value: Any, op: str) -> int | float:
    number = to_number(value)
    if number is None:
        msg = f"Operator {op!r} needs numbers, got {value!r}"
        raise FormulaError(msg)
    return number


def _arithmetic(op: str, left: Any, right: Any) -> Any:
    if op == "+" and isinstance(left, str) and isinstance(right, str):
        if to_number(left) is None or to_number(right) is None:
            return left + right
    a = _operand(left, op)
    b = _operand(right, op)
    if op == "+":
        return a + b
    if op == "-":
        return a - b
    if op == "*":
        return a * b
    if b == 0:
        msg = "Division by zero"
        raise FormulaError(msg)
    if op == "/":
        return a / b
    return a % b


def _compare(op: str, left: Any, right: Any) -> bool:
    left_num, right_num = to_number(left), to_number(right)
    if left_num is not None and right_num is not None:
        left, right = left_num, right_num
    if op == "==":
        return bool(left == right)
    if op == "!=":
        return bool(left != right)
    try:
        if op == "<":
            return bool(left < right)
        if op == "<=":
            return bool(left <= right)
        if op == ">":
            return bool(left > right)
        return bool(left >= right)
    except TypeError as exc:
        msg = f"Cannot compare {left!r} {op} {right!r}"
        raise FormulaError(msg) from exc


def _evaluate(node: Node, scope: Mapping[str, Any]) -> Any:
    if isinstance(node, Constant):
        return node.value
    if isinstance(node, FieldRef):
        if node.field_id not in scope:
            msg = f"Unknown field reference {node.field_id!r}"
            raise FormulaError(msg)
        return scope[node.field_id]
    if isinstance(node, Unary):
        operand = _evaluate(node.operand, scope)
        if node.op == "not":
            return not operand
        number = _operand(operand, node.op)
        return -number if node.op == "-" else number
    if node.op == "and":
        return bool(_evaluate(node.left, scope)) and bool(_evaluate(node.right, scope))
    if node.op == "or":
        return bool(_evaluate(node.left, scope)) or bool(_evaluate(node.right, scope))
    left = _evaluate(node.left, scope)
    right = _evaluate(node.right, scope)
    if node.op in _COMPARISON_OPS:
        return _compare(node.op, left, right)
    return _arithmetic(node.op, left, right)


@dataclass(frozen=True, slots=True)
class Formula:
    """A parsed formula, reusable across evaluations."""

    source: str
    root: Node
    references: frozenset[str]

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        """Evaluate against *scope* (field id -> value).

        Raises:
            FormulaError: On unknown references, non-numeric operands,
                division by zero or incomparable values.
        """
        return _evaluate(self.root, scope)


@functools.lru_cache(maxsize=512)
def parse_formula(source: str) -> Formula:
    """Parse *source* into a :class:`Formula`.

    Raises:
        FormulaError: If the formula is empty, too long or malformed.
    """
    if not source or not source.strip():
        msg = "Formula is empty"
        raise FormulaError(msg)
    if len(source) > MAX_FORMULA_LENGTH:
        msg = f"Formula exceeds {MAX_FORMULA_LENGTH} characters"
        raise FormulaError(msg)
    parser = _Parser(_tokenize(source))
    root = parser.parse()
    return Formula(source=source, root=root, references=frozenset(parser.references))
