# turnflow/core/engine/context.py
"""
Per-turn dialog context.

A ``DialogContext`` is bound to one conversation's (working copy of the)
dialog stack for the duration of a single turn.  Step functions receive it
and call exactly one of ``prompt``/``suspend_for_input``, ``begin``,
``next``, ``replace`` or ``end``; the call is recorded and applied after the
step returns.  The context then keeps resuming whatever is on top of the
stack (the cascade) until a frame suspends for input or the stack empties.
"""
from __future__ import annotations

import copy
import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from turnflow.config import Settings, settings as default_settings
from turnflow.core.engine.definitions import (
    ComponentDialog,
    DialogDefinition,
    DialogKind,
    PromptDialog,
    SequenceDialog,
)
from turnflow.core.engine.domain import (
    Activity,
    DialogInstance,
    DialogStack,
    DialogTurnResult,
    DialogTurnStatus,
    FramePhase,
    PromptRequest,
)
from turnflow.core.engine.errors import (
    CascadeLimitExceeded,
    DialogError,
    MalformedStep,
    NoActiveDialog,
    ValidationFailed,
)
from turnflow.core.engine.prompts import Validator, validate_input
from turnflow.core.engine.registry import DialogRegistry
from turnflow.infra.logging_config import LogContext
from turnflow.infra.metrics import EngineMetrics

logger = logging.getLogger(__name__)


class ActionKind(str, Enum):
    SUSPEND = "suspend"
    BEGIN = "begin"
    NEXT = "next"
    REPLACE = "replace"
    END = "end"


@dataclass
class StepAction:
    """The single stack transition a step (or a built-in dialog kind) asked for."""
    kind: ActionKind
    dialog_name: Optional[str] = None
    scope: tuple[str, ...] = ()
    values: dict = field(default_factory=dict)
    result: Any = None
    request: Optional[PromptRequest] = None
    retry: bool = False


class _SignalKind(str, Enum):
    START = "start"    # frame was just pushed
    INPUT = "input"    # the turn's user input
    RESULT = "result"  # value from a finished child (or a step's next())
    RUN = "run"        # run the step at the current cursor


@dataclass
class _Signal:
    kind: _SignalKind
    value: Any = None


class DialogContext:
    """Stack operations for one turn of one conversation."""

    def __init__(
        self,
        registry: DialogRegistry,
        stack: DialogStack,
        *,
        turn_input: Any = None,
        settings: Settings | None = None,
        log: LogContext | None = None,
    ) -> None:
        self.registry = registry
        self.stack = stack
        self.input = turn_input
        self.settings = settings or default_settings
        self.activities: list[Activity] = []
        self._log = log or LogContext(logger)
        self._recorded: Optional[list[StepAction]] = None
        self._running_frame: Optional[DialogInstance] = None
        self._cascade_steps = 0

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def active_dialog(self) -> Optional[DialogInstance]:
        return self.stack.top

    @property
    def cascade_steps(self) -> int:
        return self._cascade_steps

    # ------------------------------------------------------------------
    # Engine-facing operations
    # ------------------------------------------------------------------

    async def begin_dialog(self, name: str, initial_values: dict | None = None) -> DialogTurnResult:
        """Push ``name`` (resolved in the root registry) and run until suspension or empty stack."""
        if self._recorded is not None:
            raise MalformedStep("begin_dialog() is not available inside a step; use begin()")
        definition, scope = self.registry.resolve_in_scope(name)
        if self.stack.top is not None:
            self.stack.top.phase = FramePhase.AWAITING_CHILD
        self._push(definition.name, scope, copy.deepcopy(initial_values or {}))
        return await self._run(_Signal(_SignalKind.START))

    async def continue_dialog(self) -> DialogTurnResult:
        """Resume the top frame with this turn's input."""
        if self._recorded is not None:
            raise MalformedStep("continue_dialog() is not available inside a step")
        top = self.stack.top
        if top is None:
            raise NoActiveDialog()
        if not top.is_awaiting_input:
            raise DialogError(
                f"Top frame '{top.dialog_name}' is in phase '{top.phase.value}', not awaiting input"
            )
        return await self._run(_Signal(_SignalKind.INPUT, self.input))

    # ------------------------------------------------------------------
    # Step-facing operations (exactly one per step invocation)
    # ------------------------------------------------------------------

    def begin(self, name: str, initial_values: dict | None = None) -> StepAction:
        """Push a child dialog; its result reaches this dialog's next step."""
        frame = self._require_step("begin")
        definition, scope = self.registry.resolve_in_scope(name, frame.scope)
        return self._record(StepAction(
            ActionKind.BEGIN,
            dialog_name=definition.name,
            scope=scope,
            values=copy.deepcopy(initial_values or {}),
        ))

    def next(self, result: Any = None) -> StepAction:
        """This step is done; run the following step (or finish the dialog) with ``result``."""
        self._require_step("next")
        return self._record(StepAction(ActionKind.NEXT, result=result))

    def replace(self, name: str, initial_values: dict | None = None) -> StepAction:
        """Swap this dialog for ``name`` without growing the stack."""
        frame = self._require_step("replace")
        definition, scope = self.registry.resolve_in_scope(name, frame.scope)
        return self._record(StepAction(
            ActionKind.REPLACE,
            dialog_name=definition.name,
            scope=scope,
            values=copy.deepcopy(initial_values or {}),
        ))

    def end(self, result: Any = None) -> StepAction:
        """Finish this dialog now, handing ``result`` to whatever began it."""
        self._require_step("end")
        return self._record(StepAction(ActionKind.END, result=result))

    def suspend_for_input(self, request: Union[PromptRequest, str]) -> StepAction:
        """
        Stop the turn here and wait for the user's reply.

        A reply to a request with choices must name one of them; without
        choices the raw input (even None or blank) reaches the next step.
        """
        self._require_step("suspend_for_input")
        if isinstance(request, str):
            request = PromptRequest(text=request)
        return self._record(StepAction(ActionKind.SUSPEND, request=request))

    def prompt(
        self,
        text: str,
        choices: list[str] | None = None,
        retry_text: str | None = None,
        enumerate_choices: bool = True,
    ) -> StepAction:
        return self.suspend_for_input(PromptRequest(
            text=text,
            choices=list(choices) if choices else None,
            retry_text=retry_text,
            enumerate_choices=enumerate_choices,
        ))

    def send(self, text: str | None = None, payload: Any = None) -> None:
        """Queue an outbound message; not a stack action."""
        self.activities.append(Activity.message(text=text, payload=payload))

    # ------------------------------------------------------------------
    # Cascade
    # ------------------------------------------------------------------

    async def _run(self, signal: _Signal) -> DialogTurnResult:
        while True:
            frame = self.stack.top
            if frame is None:
                return DialogTurnResult(
                    DialogTurnStatus.COMPLETE,
                    result=signal.value,
                    cascade_steps=self._cascade_steps,
                )

            self._cascade_steps += 1
            if self._cascade_steps > self.settings.max_cascade_steps:
                raise CascadeLimitExceeded(self.settings.max_cascade_steps)

            definition = self._definition_for(frame)
            action = await self._resume(frame, definition, signal)
            next_signal = self._apply(frame, definition, action)
            if next_signal is None:
                return DialogTurnResult(DialogTurnStatus.WAITING, cascade_steps=self._cascade_steps)
            signal = next_signal

    async def _resume(
        self,
        frame: DialogInstance,
        definition: DialogDefinition,
        signal: _Signal,
    ) -> StepAction:
        if definition.kind == DialogKind.SEQUENCE:
            return await self._resume_sequence(frame, definition, signal)
        elif definition.kind == DialogKind.PROMPT:
            return self._resume_prompt(frame, definition, signal)
        elif definition.kind == DialogKind.COMPONENT:
            return self._resume_component(frame, definition, signal)
        raise DialogError(f"Unsupported dialog kind: {definition.kind!r}")

    async def _resume_sequence(
        self,
        frame: DialogInstance,
        definition: SequenceDialog,
        signal: _Signal,
    ) -> StepAction:
        if signal.kind == _SignalKind.START:
            frame.step_cursor = 0
            return await self._invoke_step(frame, definition, None)

        if signal.kind == _SignalKind.RUN:
            return await self._invoke_step(frame, definition, signal.value)

        if signal.kind == _SignalKind.INPUT:
            request = frame.pending or PromptRequest(text="")
            accepted, value = self._accept_input(frame, definition.name, request, require_text=False)
            if not accepted:
                return StepAction(ActionKind.SUSPEND, request=request, retry=True)
        else:
            value = signal.value

        frame.pending = None
        frame.retries = 0
        frame.step_cursor += 1
        if frame.step_cursor >= len(definition.steps):
            return StepAction(ActionKind.END, result=value)
        return await self._invoke_step(frame, definition, value)

    def _resume_prompt(
        self,
        frame: DialogInstance,
        definition: PromptDialog,
        signal: _Signal,
    ) -> StepAction:
        if signal.kind == _SignalKind.START:
            # phase 0 -> 1: render, then wait for the reply
            frame.step_cursor = 1
            return StepAction(ActionKind.SUSPEND, request=definition.request())

        if signal.kind == _SignalKind.INPUT:
            accepted, value = self._accept_input(
                frame,
                definition.name,
                definition.request(),
                validator=definition.validator,
                max_retries=definition.max_retries,
            )
            if not accepted:
                return StepAction(ActionKind.SUSPEND, request=definition.request(), retry=True)
            return StepAction(ActionKind.END, result=value)

        raise DialogError(f"Prompt dialog '{definition.name}' cannot handle a '{signal.kind.value}' signal")

    def _resume_component(
        self,
        frame: DialogInstance,
        definition: ComponentDialog,
        signal: _Signal,
    ) -> StepAction:
        if signal.kind == _SignalKind.START:
            inner_scope = frame.scope + (frame.dialog_name,)
            entry, scope = self.registry.resolve_in_scope(definition.entry_name, inner_scope)
            return StepAction(ActionKind.BEGIN, dialog_name=entry.name, scope=scope, values={})

        if signal.kind == _SignalKind.RESULT:
            # entry dialog finished: the component finishes with its result
            return StepAction(ActionKind.END, result=signal.value)

        raise DialogError(f"Component dialog '{definition.name}' cannot handle a '{signal.kind.value}' signal")

    def _apply(
        self,
        frame: DialogInstance,
        definition: DialogDefinition,
        action: StepAction,
    ) -> Optional[_Signal]:
        """Apply one action to the stack; None means the turn is suspended."""
        if action.kind == ActionKind.SUSPEND:
            frame.phase = FramePhase.AWAITING_INPUT
            if not action.retry:
                frame.pending = action.request
                frame.retries = 0
            self.activities.append(Activity.from_request(action.request, retry=action.retry))
            return None

        if action.kind == ActionKind.BEGIN:
            frame.phase = FramePhase.AWAITING_CHILD
            frame.pending = None
            self._push(action.dialog_name, action.scope, action.values)
            return _Signal(_SignalKind.START)

        if action.kind == ActionKind.NEXT:
            frame.step_cursor += 1
            if frame.step_cursor >= len(definition.steps):
                self.stack.pop()
                return _Signal(_SignalKind.RESULT, action.result)
            return _Signal(_SignalKind.RUN, action.result)

        if action.kind == ActionKind.REPLACE:
            self.stack.replace(self._new_frame(action.dialog_name, action.scope, action.values))
            EngineMetrics.dialog_begun(action.dialog_name)
            return _Signal(_SignalKind.START)

        if action.kind == ActionKind.END:
            self.stack.pop()
            return _Signal(_SignalKind.RESULT, action.result)

        raise DialogError(f"Unsupported step action: {action.kind!r}")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _invoke_step(
        self,
        frame: DialogInstance,
        definition: SequenceDialog,
        result: Any,
    ) -> StepAction:
        index = frame.step_cursor
        step = definition.steps[index]
        frame.phase = FramePhase.READY
        self._recorded = []
        self._running_frame = frame
        try:
            outcome = step(self, frame.local_values, result)
            if inspect.isawaitable(outcome):
                await outcome
            actions = self._recorded
        finally:
            self._recorded = None
            self._running_frame = None

        if not actions:
            raise MalformedStep(
                "step returned without an action (prompt, begin, next, replace or end)",
                dialog=definition.name,
                step_index=index,
            )
        if len(actions) > 1:
            kinds = ", ".join(a.kind.value for a in actions)
            raise MalformedStep(
                f"step performed {len(actions)} actions ({kinds}); exactly one is allowed",
                dialog=definition.name,
                step_index=index,
            )
        return actions[0]

    def _accept_input(
        self,
        frame: DialogInstance,
        dialog_name: str,
        request: PromptRequest,
        validator: Optional[Validator] = None,
        max_retries: Optional[int] = None,
        require_text: bool = True,
    ) -> tuple[bool, Any]:
        """Validate the turn input; (False, None) means re-prompt."""
        try:
            return True, validate_input(request, self.input, validator, require_text=require_text)
        except ValidationFailed as exc:
            frame.retries += 1
            limit = max_retries if max_retries is not None else self.settings.prompt_max_retries
            if limit is not None and frame.retries > limit:
                self._log.warning(
                    "Prompt gave up after %d invalid replies",
                    frame.retries,
                    extra={"dialog": dialog_name},
                )
                return True, None
            EngineMetrics.prompt_retry(dialog_name)
            self._log.info(
                "Prompt input rejected (attempt %d): %s",
                frame.retries,
                exc.detail,
                extra={"dialog": dialog_name},
            )
            return False, None

    def _definition_for(self, frame: DialogInstance) -> DialogDefinition:
        definition, _ = self.registry.resolve_in_scope(frame.dialog_name, frame.scope)
        return definition

    def _new_frame(self, name: str, scope: tuple[str, ...], values: dict | None) -> DialogInstance:
        return DialogInstance(dialog_name=name, local_values=dict(values or {}), scope=tuple(scope))

    def _push(self, name: str, scope: tuple[str, ...], values: dict | None) -> None:
        self.stack.push(self._new_frame(name, scope, values))
        EngineMetrics.dialog_begun(name)

    def _require_step(self, operation: str) -> DialogInstance:
        if self._recorded is None or self._running_frame is None:
            raise MalformedStep(f"{operation}() can only be called from a running step")
        return self._running_frame

    def _record(self, action: StepAction) -> StepAction:
        self._recorded.append(action)
        return action
