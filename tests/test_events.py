"""Tests for editor event parsing and dispatch."""

import json

import pytest
from pydantic import ValidationError

from code_ledger.trackers.events import (
    EditEvent,
    FocusEvent,
    HostFocusEvent,
    handle_line,
    parse_event,
)


class TestParseEvent:
    """Tests for parse_event."""

    def test_parses_edit_line(self):
        line = json.dumps(
            {
                "type": "edit",
                "path": "/a.py",
                "language": "python",
                "changes": [{"start_line": 0, "end_line": 1, "text": "x\ny\n"}],
            }
        )
        event = parse_event(line)

        assert isinstance(event, EditEvent)
        assert event.changes[0].end_line == 1
        assert event.changes[0].range_length == 0

    def test_parses_dict(self):
        event = parse_event({"type": "host_focus", "focused": False})
        assert isinstance(event, HostFocusEvent)
        assert event.focused is False

    def test_focus_without_path(self):
        event = parse_event('{"type": "focus"}')
        assert isinstance(event, FocusEvent)
        assert event.path is None

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            parse_event('{"type": "save", "path": "/a.py"}')

    def test_negative_line_rejected(self):
        with pytest.raises(ValidationError):
            parse_event({"type": "edit", "path": "/a.py", "changes": [{"start_line": -1, "end_line": 0}]})


class TestHandleLine:
    """Tests for handle_line dispatch."""

    def test_open_focus_edit_flow(self, accumulator, clock):
        assert handle_line(accumulator, '{"type": "open", "path": "/a.py", "language": "python"}')
        assert handle_line(accumulator, '{"type": "focus", "path": "/a.py", "language": "python"}')
        assert handle_line(
            accumulator,
            '{"type": "edit", "path": "/a.py", "changes": [{"start_line": 0, "end_line": 0, "text": "hi\\n"}]}',
        )

        clock.advance(1.0)
        accumulator.tick()

        activity = accumulator.snapshot().files["/a.py"]
        assert activity.language == "python"
        assert activity.lines_added == 1
        assert activity.keystrokes == 3
        assert activity.time_spent == pytest.approx(1.0)

    def test_close_drops_focus(self, accumulator):
        handle_line(accumulator, '{"type": "focus", "path": "/a.py"}')
        handle_line(accumulator, '{"type": "close", "path": "/a.py"}')
        assert accumulator.current_file is None

    def test_host_blur(self, accumulator, clock):
        handle_line(accumulator, '{"type": "focus", "path": "/a.py"}')
        handle_line(accumulator, '{"type": "host_focus", "focused": false}')

        clock.advance(1.0)
        assert accumulator.tick() == 0.0

    def test_selection_and_visible_mark_activity(self, accumulator, clock):
        clock.advance(30.0)
        assert handle_line(accumulator, '{"type": "selection", "path": "/a.py"}')
        assert accumulator.idle_detector.last_activity == clock.now

        clock.advance(30.0)
        assert handle_line(accumulator, '{"type": "visible"}')
        assert accumulator.idle_detector.last_activity == clock.now

    def test_invalid_line_is_ignored(self, accumulator):
        assert handle_line(accumulator, "not json") is False
        assert handle_line(accumulator, '{"type": "open"}') is False
        assert accumulator.tracked_files == []

    def test_blank_line(self, accumulator):
        assert handle_line(accumulator, "   \n") is False
