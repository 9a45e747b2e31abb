# turnflow/core/engine/ports.py
from __future__ import annotations
from typing import Protocol, Optional
from turnflow.core.engine.domain import Activity, DialogStack


class AsyncStackStore(Protocol):
    async def load(self, conversation_id: str) -> Optional[DialogStack]:
        """Stored stack, or None for a conversation seen for the first time."""
        ...

    async def save(self, conversation_id: str, stack: DialogStack) -> Optional[bool]:
        """
        Persist the stack durably before returning.
        Raising, or returning False, means the save failed.
        """
        ...

    async def delete(self, conversation_id: str) -> None: ...
    async def cleanup_expired(self, ttl_seconds: int) -> int: ...


class AsyncRenderer(Protocol):
    async def render(self, conversation_id: str, activity: Activity) -> None: ...
