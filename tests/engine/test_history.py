"""Tests for CommandHistory undo/redo."""

from __future__ import annotations

import pytest

from formctl.domain.commands import BuilderState, CommandType
from formctl.domain.fields import FormField
from formctl.engine.history import CommandHistory


def _fields(*ids: str) -> list[FormField]:
    return [FormField(id=i) for i in ids]


@pytest.fixture
def history() -> CommandHistory:
    return CommandHistory(BuilderState(title="Order"))


class TestPushUndoRedo:
    def test_round_trip(self, history: CommandHistory) -> None:
        history.record(CommandType.ADD_FIELD, [], _fields("a"))
        history.record(CommandType.UPDATE_TITLE, "Order", "Order v2")
        assert history.state.title == "Order v2"
        assert history.current_index == 2

        history.undo()
        assert history.state.title == "Order"
        assert [f.id for f in history.state.fields] == ["a"]
        history.undo()
        assert history.state.fields == []
        assert not history.can_undo

        history.redo()
        history.redo()
        assert history.state.title == "Order v2"
        assert not history.can_redo

    def test_boundaries_return_none(self, history: CommandHistory) -> None:
        assert history.undo() is None
        assert history.redo() is None
        history.record(CommandType.UPDATE_DESCRIPTION, "", "Orders")
        assert history.redo() is None

    def test_push_discards_redo_tail(self, history: CommandHistory) -> None:
        history.record(CommandType.ADD_FIELD, [], _fields("a"))
        history.record(CommandType.ADD_FIELD, _fields("a"), _fields("a", "b"))
        history.undo()
        history.record(CommandType.ADD_FIELD, _fields("a"), _fields("a", "c"))
        assert len(history) == 2
        assert not history.can_redo
        assert [f.id for f in history.state.fields] == ["a", "c"]

    def test_bulk_update_restores_whole_state(self, history: CommandHistory) -> None:
        after = BuilderState(title="New", description="d", fields=_fields("x"))
        history.record(CommandType.BULK_UPDATE, history.state, after)
        assert history.state == after
        history.undo()
        assert history.state == BuilderState(title="Order")


class TestLimits:
    def test_max_size_drops_oldest(self) -> None:
        history = CommandHistory(BuilderState(), max_size=2)
        for title in ("a", "b", "c"):
            history.record(CommandType.UPDATE_TITLE, history.state.title, title)
        assert len(history) == 2
        assert history.current_index == 2
        assert history.commands[0].current == "b"
        history.undo()
        history.undo()
        assert history.undo() is None
        assert history.state.title == "a"

    def test_invalid_max_size(self) -> None:
        with pytest.raises(ValueError):
            CommandHistory(BuilderState(), max_size=0)


class TestGoTo:
    def test_jumps_both_ways(self, history: CommandHistory) -> None:
        for title in ("a", "b", "c"):
            history.record(CommandType.UPDATE_TITLE, history.state.title, title)
        assert history.go_to(1).title == "a"
        assert history.go_to(3).title == "c"
        assert history.go_to(0).title == "Order"

    def test_out_of_range(self, history: CommandHistory) -> None:
        with pytest.raises(ValueError, match="out of range"):
            history.go_to(1)

    def test_command_at_and_clear(self, history: CommandHistory) -> None:
        history.record(CommandType.UPDATE_TITLE, "Order", "x", "rename")
        assert history.command_at(0).description == "rename"
        assert history.command_at(5) is None
        history.clear()
        assert len(history) == 0
        assert history.state.title == "x"
