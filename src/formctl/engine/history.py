"""Command history — linear undo/redo over builder-state snapshots.

INVARIANT: ``0 <= current_index <= len(commands)``. Commands before the
index are applied; commands at or after it form the redo tail, which any
push discards.
"""

from __future__ import annotations

import logging
from typing import Any

from formctl.domain.commands import BuilderState, Command, CommandType, build_command

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 50


class CommandHistory:
    """Undo/redo stack owned by one editing session.

    Holds the live :class:`BuilderState`; ``push``, ``undo`` and ``redo``
    move it and return the new state (or None at a boundary).
    """

    def __init__(self, initial_state: BuilderState, *, max_size: int = DEFAULT_MAX_SIZE) -> None:
        if max_size < 1:
            msg = f"max_size must be at least 1, got {max_size}"
            raise ValueError(msg)
        self._state = initial_state
        self._commands: list[Command] = []
        self._index = 0
        self._max_size = max_size

    @property
    def state(self) -> BuilderState:
        return self._state

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def commands(self) -> list[Command]:
        return list(self._commands)

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def can_undo(self) -> bool:
        return self._index > 0

    @property
    def can_redo(self) -> bool:
        return self._index < len(self._commands)

    def __len__(self) -> int:
        return len(self._commands)

    def push(self, command: Command) -> BuilderState:
        """Apply *command*, discarding any redo tail."""
        del self._commands[self._index :]
        self._commands.append(command)
        if len(self._commands) > self._max_size:
            dropped = len(self._commands) - self._max_size
            del self._commands[:dropped]
            logger.debug("history full, dropped %d oldest command(s)", dropped)
        self._index = len(self._commands)
        self._state = command.restore(self._state, "current")
        return self._state

    def record(
        self,
        command_type: CommandType | str,
        previous: Any,
        current: Any,
        description: str = "",
    ) -> BuilderState:
        """Build a command with a generated id and timestamp, then push it."""
        return self.push(build_command(command_type, previous, current, description))

    def undo(self) -> BuilderState | None:
        if not self.can_undo:
            return None
        self._index -= 1
        self._state = self._commands[self._index].restore(self._state, "previous")
        return self._state

    def redo(self) -> BuilderState | None:
        if not self.can_redo:
            return None
        self._state = self._commands[self._index].restore(self._state, "current")
        self._index += 1
        return self._state

    def go_to(self, index: int) -> BuilderState:
        """Undo or redo repeatedly until ``current_index == index``.

        Raises:
            ValueError: If *index* is outside ``[0, len(commands)]``.
        """
        if not 0 <= index <= len(self._commands):
            msg = f"History index {index} out of range 0..{len(self._commands)}"
            raise ValueError(msg)
        while self._index > index:
            self.undo()
        while self._index < index:
            self.redo()
        return self._state

    def command_at(self, index: int) -> Command | None:
        if 0 <= index < len(self._commands):
            return self._commands[index]
        return None

    def clear(self) -> None:
        """Forget every command. The live state is kept."""
        self._commands.clear()
        self._index = 0
