# turnflow/core/engine/driver.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from turnflow.config import Settings, settings as default_settings
from turnflow.core.engine.context import DialogContext
from turnflow.core.engine.domain import DialogStack, DialogTurnStatus, TurnResult
from turnflow.core.engine.errors import (
    DialogError,
    MalformedStep,
    NoActiveDialog,
    PersistenceFailure,
)
from turnflow.core.engine.ports import AsyncRenderer, AsyncStackStore
from turnflow.core.engine.registry import DialogRegistry
from turnflow.infra.keyed_lock import KeyedLock
from turnflow.infra.logging_config import LogContext, get_logger
from turnflow.infra.metrics import EngineMetrics

logger = get_logger(__name__)


class TurnDriver:
    """
    Entry point for every incoming conversational event.
    Workflow: lock -> load -> (continue | begin root) -> cascade -> commit -> render.

    Idle (empty stack) conversations begin the root dialog; active ones
    resume the top frame with the turn's input.  The turn works on a copy of
    the loaded stack and only a successful save makes its effects visible:
    if a step, the engine or the store fails, nothing is written and nothing
    is rendered, so the next turn retries from the same place.
    """

    def __init__(
        self,
        *,
        registry: DialogRegistry,
        store: AsyncStackStore,
        renderer: AsyncRenderer | None = None,
        root_dialog: str | None = None,
        settings: Settings | None = None,
        locks: KeyedLock | None = None,
    ) -> None:
        self.settings = settings or default_settings
        self.registry = registry
        self.store = store
        self.renderer = renderer
        self.root_dialog = root_dialog or self.settings.root_dialog
        self.locks = locks or KeyedLock()

        # fail at startup, not on the first idle conversation
        registry.resolve(self.root_dialog)
        registry.freeze()

    async def on_turn(
        self,
        conversation_id: str,
        user_input: Any = None,
        *,
        turn_id: str | None = None,
    ) -> TurnResult:
        log = LogContext(logger, conversation_id=conversation_id, turn_id=turn_id)

        async with self.locks.hold(conversation_id):
            try:
                with EngineMetrics.track_turn_time():
                    result = await self._process(conversation_id, user_input, turn_id, log)
            except DialogError as exc:
                EngineMetrics.turn_failed(type(exc).__name__)
                log.error(f"Turn aborted: {exc.detail}", exc_info=True)
                raise
            except Exception:
                EngineMetrics.turn_failed("step_exception")
                log.error("Turn aborted by an exception in a step", exc_info=True)
                raise

            # committed: a render failure no longer aborts the turn
            await self._render(conversation_id, result.activities, log)
            return result

    async def _process(
        self,
        conversation_id: str,
        user_input: Any,
        turn_id: str | None,
        log: LogContext,
    ) -> TurnResult:
        stored = await self._load(conversation_id)

        if stored is None:
            stack = DialogStack()
        elif self._is_expired(stored):
            # overwritten by this turn's save; kept as-is if the turn fails
            log.info(f"Discarding expired stack (depth={stored.depth})")
            EngineMetrics.stack_expired()
            stack = DialogStack()
        else:
            stack = stored

        if turn_id is not None and stack.last_turn_id == turn_id:
            EngineMetrics.duplicate_turn()
            log.info("Duplicate turn ignored")
            return TurnResult(
                conversation_id=conversation_id,
                status=DialogTurnStatus.COMPLETE if stack.is_empty else DialogTurnStatus.WAITING,
                depth=stack.depth,
                duplicate=True,
            )

        working = stack.clone()
        dc = DialogContext(
            self.registry,
            working,
            turn_input=user_input,
            settings=self.settings,
            log=log,
        )

        try:
            outcome = await dc.continue_dialog()
        except NoActiveDialog:
            log.info(f"Idle conversation, beginning '{self.root_dialog}'")
            outcome = await dc.begin_dialog(self.root_dialog)

        if not working.is_settled():
            raise MalformedStep(
                f"turn ended with '{working.top.dialog_name}' in phase '{working.top.phase.value}'"
            )

        working.last_turn_id = turn_id
        working.updated_at = datetime.now(timezone.utc)
        await self._save(conversation_id, working)

        EngineMetrics.turn_processed(outcome.status.value)
        log.info(
            f"Turn done: status={outcome.status.value} depth={working.depth} "
            f"cascade_steps={outcome.cascade_steps} stack={working.names()}"
        )

        return TurnResult(
            conversation_id=conversation_id,
            status=outcome.status,
            activities=list(dc.activities),
            result=outcome.result,
            depth=working.depth,
        )

    async def _render(self, conversation_id: str, activities: list, log: LogContext) -> None:
        if self.renderer is None:
            return
        for activity in activities:
            try:
                await self.renderer.render(conversation_id, activity)
            except Exception:
                EngineMetrics.render_failed()
                log.error(f"Render failed after commit ({activity.kind.value})", exc_info=True)
                raise

    async def reset(self, conversation_id: str) -> None:
        """Conversation-level reset: drop the stored stack (next turn begins the root dialog)."""
        async with self.locks.hold(conversation_id):
            try:
                await self.store.delete(conversation_id)
            except Exception as exc:
                EngineMetrics.persistence_error("delete")
                raise PersistenceFailure("delete", str(exc)) from exc
        LogContext(logger, conversation_id=conversation_id).info("Conversation reset")

    async def get_stack(self, conversation_id: str) -> DialogStack:
        """Stored stack for inspection (empty when the conversation is unknown)."""
        stored = await self._load(conversation_id)
        return stored.clone() if stored is not None else DialogStack()

    async def cleanup_expired(self) -> int:
        if not self.settings.stack_ttl_enabled:
            return 0
        try:
            return await self.store.cleanup_expired(self.settings.stack_ttl_seconds)
        except Exception as exc:
            EngineMetrics.persistence_error("cleanup")
            raise PersistenceFailure("cleanup", str(exc)) from exc

    async def _load(self, conversation_id: str) -> DialogStack | None:
        try:
            return await self.store.load(conversation_id)
        except PersistenceFailure:
            EngineMetrics.persistence_error("load")
            raise
        except Exception as exc:
            EngineMetrics.persistence_error("load")
            raise PersistenceFailure("load", str(exc)) from exc

    async def _save(self, conversation_id: str, stack: DialogStack) -> None:
        try:
            saved = await self.store.save(conversation_id, stack)
        except PersistenceFailure:
            EngineMetrics.persistence_error("save")
            raise
        except Exception as exc:
            EngineMetrics.persistence_error("save")
            raise PersistenceFailure("save", str(exc)) from exc
        if saved is False:
            EngineMetrics.persistence_error("save")
            raise PersistenceFailure("save", "store reported failure")

    def _is_expired(self, stack: DialogStack) -> bool:
        if not self.settings.stack_ttl_enabled or stack.updated_at is None:
            return False
        updated = stack.updated_at
        if updated.tzinfo is None:
            updated = updated.replace(tzinfo=timezone.utc)
        elapsed = (datetime.now(timezone.utc) - updated).total_seconds()
        return elapsed > self.settings.stack_ttl_seconds
