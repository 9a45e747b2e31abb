# turnflow/core/engine/definitions.py
"""
Dialog definitions: immutable, named templates the engine instantiates as
stack frames.

There are exactly three kinds and the engine handles each one explicitly:

* ``SequenceDialog``  - ordered step functions (waterfall)
* ``PromptDialog``    - render / validate / retry unit
* ``ComponentDialog`` - private registry of child dialogs with one entry point
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Iterable, Optional, Union

from turnflow.core.engine.domain import PromptRequest
from turnflow.core.engine.errors import UnknownDialog
from turnflow.core.engine.prompts import Validator
from turnflow.core.engine.registry import DialogRegistry

if TYPE_CHECKING:
    from turnflow.core.engine.context import DialogContext

# step(dc, values, result); may be a coroutine function
StepFunction = Callable[["DialogContext", dict, Any], Any]


class DialogKind(str, Enum):
    SEQUENCE = "sequence"
    PROMPT = "prompt"
    COMPONENT = "component"


@dataclass(frozen=True, eq=False)
class DialogDefinition:
    name: str

    kind: ClassVar[DialogKind]

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("Dialog name must be a non-empty string")


@dataclass(frozen=True, eq=False)
class SequenceDialog(DialogDefinition):
    """Steps run strictly in list order; each step performs exactly one action."""
    steps: tuple[StepFunction, ...] = ()

    kind: ClassVar[DialogKind] = DialogKind.SEQUENCE

    def __post_init__(self) -> None:
        super().__post_init__()
        steps = tuple(self.steps)
        if not steps:
            raise ValueError(f"Sequence dialog '{self.name}' needs at least one step")
        for step in steps:
            if not callable(step):
                raise TypeError(f"Sequence dialog '{self.name}': step {step!r} is not callable")
        object.__setattr__(self, "steps", steps)


@dataclass(frozen=True, eq=False)
class PromptDialog(DialogDefinition):
    """
    Two phases: render the request and suspend, then validate the reply.
    Invalid replies re-render ``retry_text`` (falls back to ``text``) and
    suspend again.  ``max_retries`` of None defers to settings.
    """
    text: str = ""
    choices: Optional[tuple[str, ...]] = None
    retry_text: Optional[str] = None
    validator: Optional[Validator] = None
    max_retries: Optional[int] = None
    enumerate_choices: bool = True

    kind: ClassVar[DialogKind] = DialogKind.PROMPT

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.choices is not None:
            choices = tuple(self.choices)
            if not choices:
                raise ValueError(f"Prompt dialog '{self.name}': choices must not be empty")
            object.__setattr__(self, "choices", choices)
        if self.max_retries is not None and self.max_retries < 1:
            raise ValueError(f"Prompt dialog '{self.name}': max_retries must be >= 1")

    def request(self) -> PromptRequest:
        return PromptRequest(
            text=self.text,
            choices=list(self.choices) if self.choices else None,
            retry_text=self.retry_text,
            enumerate_choices=self.enumerate_choices,
        )


@dataclass(frozen=True, eq=False)
class ComponentDialog(DialogDefinition):
    """
    A bundle of child dialogs that looks like one dialog from outside.
    Children resolve names in ``dialogs`` first, then in enclosing registries.
    """
    dialogs: Union[DialogRegistry, Iterable[DialogDefinition]] = field(default_factory=DialogRegistry)
    entry_name: Optional[str] = None

    kind: ClassVar[DialogKind] = DialogKind.COMPONENT

    def __post_init__(self) -> None:
        super().__post_init__()
        registry = self.dialogs
        if not isinstance(registry, DialogRegistry):
            registry = DialogRegistry(registry)
            object.__setattr__(self, "dialogs", registry)
        if not len(registry):
            raise ValueError(f"Component dialog '{self.name}' has no child dialogs")
        if self.entry_name is None:
            object.__setattr__(self, "entry_name", registry.first_name)
        elif self.entry_name not in registry:
            raise UnknownDialog(
                self.entry_name,
                f"Component '{self.name}': entry dialog '{self.entry_name}' is not one of its children",
            )


def choice_prompt(
    name: str,
    text: str,
    choices: Iterable[str],
    retry_text: Optional[str] = None,
    **kwargs,
) -> PromptDialog:
    """Prompt that only accepts one of ``choices`` (by label or 1-based number)."""
    return PromptDialog(name=name, text=text, choices=tuple(choices), retry_text=retry_text, **kwargs)


def text_prompt(
    name: str,
    text: str,
    retry_text: Optional[str] = None,
    validator: Optional[Validator] = None,
    **kwargs,
) -> PromptDialog:
    """Free-text prompt; blank input (or a validator rejection) is retried."""
    return PromptDialog(name=name, text=text, retry_text=retry_text, validator=validator, **kwargs)
