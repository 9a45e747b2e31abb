# turnflow/infra/memory_store.py
from __future__ import annotations
from datetime import datetime, timezone, timedelta
from typing import Optional

from turnflow.core.engine.domain import DialogStack
from turnflow.core.engine.serialization import stack_from_json, stack_to_json
from turnflow.infra.logging_config import get_logger

logger = get_logger(__name__)


class InMemoryStackStore:
    """
    Process-local implementation of AsyncStackStore.

    Stacks are kept as serialized JSON, so every ``load`` returns an
    independent copy, the same way a database-backed store would.
    """

    def __init__(self) -> None:
        self._stacks: dict[str, tuple[str, datetime]] = {}

    def __len__(self) -> int:
        return len(self._stacks)

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._stacks

    async def load(self, conversation_id: str) -> Optional[DialogStack]:
        entry = self._stacks.get(conversation_id)
        if entry is None:
            return None
        payload, updated_at = entry
        stack = stack_from_json(payload)
        stack.updated_at = updated_at
        return stack

    async def save(self, conversation_id: str, stack: DialogStack) -> bool:
        updated_at = stack.updated_at or datetime.now(timezone.utc)
        self._stacks[conversation_id] = (stack_to_json(stack), updated_at)
        return True

    async def delete(self, conversation_id: str) -> None:
        self._stacks.pop(conversation_id, None)

    async def cleanup_expired(self, ttl_seconds: int) -> int:
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=ttl_seconds)
        expired = [cid for cid, (_, updated_at) in self._stacks.items() if updated_at < cutoff]
        for cid in expired:
            del self._stacks[cid]
        if expired:
            logger.info(f"Cleaned up {len(expired)} expired stacks (ttl={ttl_seconds}s)")
        return len(expired)
