# turnflow/core/engine/serialization.py
"""
Dialog stack <-> JSON.

The persisted layout is an ordered list of frame records
(``dialog_name``, ``step_cursor``, ``local_values`` plus the engine's
bookkeeping fields) wrapped in a versioned envelope.  Local values must be
JSON-compatible; tuples come back as lists.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError
from pydantic_core import PydanticSerializationError

from turnflow.core.engine.domain import DialogInstance, DialogStack, FramePhase, PromptRequest
from turnflow.core.engine.errors import PersistenceFailure

STACK_FORMAT_VERSION = 1


class PromptRecord(BaseModel):
    text: str
    choices: Optional[list[str]] = None
    retry_text: Optional[str] = None
    enumerate_choices: bool = True


class FrameRecord(BaseModel):
    dialog_name: str = Field(min_length=1)
    step_cursor: int = Field(default=0, ge=0)
    local_values: dict[str, Any] = Field(default_factory=dict)
    phase: FramePhase = FramePhase.READY
    scope: list[str] = Field(default_factory=list)
    pending: Optional[PromptRecord] = None
    retries: int = Field(default=0, ge=0)


class StackRecord(BaseModel):
    version: int = STACK_FORMAT_VERSION
    frames: list[FrameRecord] = Field(default_factory=list)
    updated_at: Optional[datetime] = None
    last_turn_id: Optional[str] = None


def _frame_to_record(frame: DialogInstance) -> FrameRecord:
    pending = None
    if frame.pending is not None:
        pending = PromptRecord(
            text=frame.pending.text,
            choices=frame.pending.choices,
            retry_text=frame.pending.retry_text,
            enumerate_choices=frame.pending.enumerate_choices,
        )
    return FrameRecord(
        dialog_name=frame.dialog_name,
        step_cursor=frame.step_cursor,
        local_values=frame.local_values,
        phase=frame.phase,
        scope=list(frame.scope),
        pending=pending,
        retries=frame.retries,
    )


def _record_to_frame(record: FrameRecord) -> DialogInstance:
    pending = None
    if record.pending is not None:
        pending = PromptRequest(
            text=record.pending.text,
            choices=record.pending.choices,
            retry_text=record.pending.retry_text,
            enumerate_choices=record.pending.enumerate_choices,
        )
    return DialogInstance(
        dialog_name=record.dialog_name,
        step_cursor=record.step_cursor,
        local_values=dict(record.local_values),
        phase=record.phase,
        scope=tuple(record.scope),
        pending=pending,
        retries=record.retries,
    )


def stack_to_record(stack: DialogStack) -> StackRecord:
    return StackRecord(
        frames=[_frame_to_record(f) for f in stack.frames],
        updated_at=stack.updated_at,
        last_turn_id=stack.last_turn_id,
    )


def record_to_stack(record: StackRecord) -> DialogStack:
    if record.version != STACK_FORMAT_VERSION:
        raise PersistenceFailure("deserialize", f"unsupported stack format version {record.version}")
    return DialogStack(
        frames=[_record_to_frame(f) for f in record.frames],
        updated_at=record.updated_at,
        last_turn_id=record.last_turn_id,
    )


def stack_to_dict(stack: DialogStack) -> dict:
    try:
        return stack_to_record(stack).model_dump(mode="json")
    except (PydanticSerializationError, ValidationError, TypeError, ValueError) as exc:
        raise PersistenceFailure("serialize", str(exc)) from exc


def stack_from_dict(data: dict) -> DialogStack:
    try:
        record = StackRecord.model_validate(data)
    except ValidationError as exc:
        raise PersistenceFailure("deserialize", str(exc)) from exc
    return record_to_stack(record)


def stack_to_json(stack: DialogStack) -> str:
    try:
        return stack_to_record(stack).model_dump_json()
    except (PydanticSerializationError, ValidationError, TypeError, ValueError) as exc:
        raise PersistenceFailure("serialize", str(exc)) from exc


def stack_from_json(text: str | bytes) -> DialogStack:
    try:
        record = StackRecord.model_validate_json(text)
    except ValidationError as exc:
        raise PersistenceFailure("deserialize", str(exc)) from exc
    return record_to_stack(record)
