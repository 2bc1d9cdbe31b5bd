"""Editor event models and dispatch onto the accumulator."""

from __future__ import annotations

import logging
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from code_ledger.trackers.activity import ActivityAccumulator, EditRange

logger = logging.getLogger(__name__)


class ContentChange(BaseModel):
    start_line: int = Field(ge=0)
    end_line: int = Field(ge=0)
    text: str = ""
    range_length: int = Field(default=0, ge=0)


class OpenEvent(BaseModel):
    type: Literal["open"]
    path: str
    language: str = "unknown"


class EditEvent(BaseModel):
    type: Literal["edit"]
    path: str
    language: str = "unknown"
    changes: list[ContentChange] = Field(default_factory=list)


class CloseEvent(BaseModel):
    type: Literal["close"]
    path: str


class FocusEvent(BaseModel):
    type: Literal["focus"]
    path: str | None = None
    language: str = "unknown"


class HostFocusEvent(BaseModel):
    type: Literal["host_focus"]
    focused: bool


class SelectionEvent(BaseModel):
    type: Literal["selection"]
    path: str | None = None


class VisibleEditorsEvent(BaseModel):
    type: Literal["visible"]


EditorEvent = Annotated[
    Union[
        OpenEvent,
        EditEvent,
        CloseEvent,
        FocusEvent,
        HostFocusEvent,
        SelectionEvent,
        VisibleEditorsEvent,
    ],
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter[EditorEvent] = TypeAdapter(EditorEvent)


def parse_event(raw: str | bytes | dict) -> EditorEvent:
    """Validate a JSON line or a dict into an editor event."""
    if isinstance(raw, dict):
        return _event_adapter.validate_python(raw)
    return _event_adapter.validate_json(raw)


def dispatch_event(accumulator: ActivityAccumulator, event: EditorEvent) -> None:
    """Route one editor event to the matching accumulator handler."""
    if isinstance(event, OpenEvent):
        accumulator.on_resource_opened(event.path, event.language)
    elif isinstance(event, EditEvent):
        changes = [
            EditRange(
                start_line=c.start_line,
                end_line=c.end_line,
                text=c.text,
                range_length=c.range_length,
            )
            for c in event.changes
        ]
        accumulator.on_resource_edited(event.path, changes, language=event.language)
    elif isinstance(event, CloseEvent):
        accumulator.on_resource_closed(event.path)
    elif isinstance(event, FocusEvent):
        accumulator.on_focus_changed(event.path, event.language)
    elif isinstance(event, HostFocusEvent):
        accumulator.on_host_focus_changed(event.focused)
    elif isinstance(event, SelectionEvent):
        accumulator.on_selection_changed(event.path)
    elif isinstance(event, VisibleEditorsEvent):
        accumulator.on_visible_editors_changed()


def handle_line(accumulator: ActivityAccumulator, line: str) -> bool:
    """Parse and dispatch one JSON line. Returns False if it was rejected."""
    line = line.strip()
    if not line:
        return False

    try:
        event = parse_event(line)
    except ValidationError as e:
        logger.warning(f"Ignoring invalid editor event: {e.error_count()} error(s) in {line[:80]!r}")
        return False

    dispatch_event(accumulator, event)
    return True
