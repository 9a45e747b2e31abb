# turnflow/core/engine/errors.py
"""
Typed errors for the dialog engine.

``ValidationFailed`` is the only recoverable kind during a turn: prompt
handling catches it and re-prompts.  ``NoActiveDialog`` is caught by the
turn driver, which begins the root dialog instead.  Everything else
propagates to the caller of ``TurnDriver.on_turn`` and leaves the stored
stack untouched.
"""
from __future__ import annotations


class DialogError(Exception):
    """Base class for all dialog engine errors."""

    def __init__(self, detail: str = "Dialog engine error"):
        self.detail = detail
        super().__init__(detail)


class UnknownDialog(DialogError):
    """A dialog name did not resolve against the registry."""

    def __init__(self, name: str, detail: str | None = None):
        self.name = name
        super().__init__(detail or f"Unknown dialog '{name}'")


class DuplicateName(DialogError):
    """A dialog with this name is already registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Dialog '{name}' is already registered")


class RegistryFrozen(DialogError):
    """Registration attempted after the registry went read-only."""


class NoActiveDialog(DialogError):
    """``continue_dialog()`` was called on an empty stack."""

    def __init__(self, detail: str = "No active dialog to continue"):
        super().__init__(detail)


class MalformedStep(DialogError):
    """A step function broke the one-action contract."""

    def __init__(self, detail: str, dialog: str | None = None, step_index: int | None = None):
        self.dialog = dialog
        self.step_index = step_index
        if dialog is not None:
            detail = f"{dialog}[{step_index}]: {detail}"
        super().__init__(detail)


class CascadeLimitExceeded(DialogError):
    """Too many synchronous transitions in one turn (the flow loops without suspending)."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"Turn exceeded {limit} cascade steps without suspending")


class ValidationFailed(DialogError):
    """Prompt input was rejected; handled locally as a retry."""

    def __init__(self, detail: str = "Invalid input", raw: object = None):
        self.raw = raw
        super().__init__(detail)


class PersistenceFailure(DialogError):
    """The stack store failed to load, save or delete a conversation stack."""

    def __init__(self, operation: str, detail: str = ""):
        self.operation = operation
        super().__init__(f"Stack {operation} failed" + (f": {detail}" if detail else ""))
