# turnflow/core/engine/domain.py
from __future__ import annotations

import copy
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, Optional


# ============================================================================
# FRAME PHASES
# ============================================================================

class FramePhase(str, Enum):
    """Where a stack frame stands between turns."""
    READY = "ready"                    # pushed, nothing has run yet
    AWAITING_INPUT = "awaiting_input"  # suspended on a prompt
    AWAITING_CHILD = "awaiting_child"  # a child dialog sits above it


# ============================================================================
# PROMPT REQUEST (what a suspension asks the user)
# ============================================================================

@dataclass
class PromptRequest:
    """
    Text and optional discrete choices handed to the renderer when a dialog
    suspends.  Kept on the frame for inline step prompts so the next turn can
    validate against the same choices and re-render the retry text.
    """
    text: str
    choices: Optional[list[str]] = None
    retry_text: Optional[str] = None
    enumerate_choices: bool = True

    def render(self, retry: bool = False) -> str:
        """Display text, with the choices listed when there are any"""
        text = self.retry_text if retry and self.retry_text else self.text
        if not self.choices:
            return text
        if self.enumerate_choices:
            options = "\n".join(f"{i}. {label}" for i, label in enumerate(self.choices, start=1))
        else:
            options = " | ".join(self.choices)
        return f"{text}\n{options}"


# ============================================================================
# OUTBOUND ACTIVITIES
# ============================================================================

class ActivityKind(str, Enum):
    PROMPT = "prompt"
    RETRY = "retry"
    MESSAGE = "message"


@dataclass
class Activity:
    """One outbound item for the rendering collaborator."""
    kind: ActivityKind
    text: Optional[str] = None
    choices: list[str] = field(default_factory=list)
    payload: Any = None

    @classmethod
    def from_request(cls, request: PromptRequest, retry: bool = False) -> "Activity":
        return cls(
            kind=ActivityKind.RETRY if retry else ActivityKind.PROMPT,
            text=request.render(retry=retry),
            choices=list(request.choices or []),
        )

    @classmethod
    def message(cls, text: Optional[str] = None, payload: Any = None) -> "Activity":
        return cls(kind=ActivityKind.MESSAGE, text=text, payload=payload)


# ============================================================================
# STACK FRAMES
# ============================================================================

@dataclass
class DialogInstance:
    """
    One active invocation of a dialog definition.

    ``dialog_name`` is a reference into the registry; ``scope`` is the path of
    component names whose private registry holds that definition (empty for
    the root registry).  ``local_values`` belongs to this frame alone and is
    discarded with it.
    """
    dialog_name: str
    step_cursor: int = 0
    local_values: Dict[str, Any] = field(default_factory=dict)
    phase: FramePhase = FramePhase.READY
    scope: tuple[str, ...] = ()
    pending: Optional[PromptRequest] = None
    retries: int = 0

    @property
    def is_awaiting_input(self) -> bool:
        return self.phase == FramePhase.AWAITING_INPUT


@dataclass
class DialogStack:
    """
    The entire persisted state of one conversation.
    Top of stack (last frame) is the only frame that may run a step.
    """
    frames: list[DialogInstance] = field(default_factory=list)
    updated_at: Optional[datetime] = None
    last_turn_id: Optional[str] = None

    def __len__(self) -> int:
        return len(self.frames)

    def __iter__(self) -> Iterator[DialogInstance]:
        return iter(self.frames)

    @property
    def top(self) -> Optional[DialogInstance]:
        return self.frames[-1] if self.frames else None

    @property
    def depth(self) -> int:
        return len(self.frames)

    @property
    def is_empty(self) -> bool:
        return not self.frames

    def push(self, frame: DialogInstance) -> None:
        self.frames.append(frame)

    def pop(self) -> DialogInstance:
        if not self.frames:
            raise IndexError("pop from an empty dialog stack")
        return self.frames.pop()

    def replace(self, frame: DialogInstance) -> DialogInstance:
        """Swap the top frame for ``frame`` in one assignment; returns the old top."""
        if not self.frames:
            raise IndexError("replace on an empty dialog stack")
        previous = self.frames[-1]
        self.frames[-1] = frame
        return previous

    def is_settled(self) -> bool:
        """True when the stack can be resumed next turn: empty, or top awaiting input."""
        return self.is_empty or self.frames[-1].is_awaiting_input

    def names(self) -> list[str]:
        return [f.dialog_name for f in self.frames]

    def clone(self) -> "DialogStack":
        return copy.deepcopy(self)


# ============================================================================
# RESULTS
# ============================================================================

class DialogTurnStatus(str, Enum):
    WAITING = "waiting"    # top frame suspended for input
    COMPLETE = "complete"  # stack emptied during this run


@dataclass
class DialogTurnResult:
    """Outcome of driving the stack until it suspends or empties."""
    status: DialogTurnStatus
    result: Any = None
    cascade_steps: int = 0


@dataclass
class TurnResult:
    """What the turn driver hands back for one incoming event."""
    conversation_id: str
    status: DialogTurnStatus
    activities: list[Activity] = field(default_factory=list)
    result: Any = None
    depth: int = 0
    duplicate: bool = False

    def as_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        for item in data["activities"]:
            item["kind"] = item["kind"].value
        return data
