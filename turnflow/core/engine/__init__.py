# turnflow/core/engine/__init__.py
"""
Core engine -- dialog registry, persisted dialog stack and turn driver.

This package contains the stack domain model, the three dialog kinds, the
per-turn dialog context (stack operations and the cascade loop), the
storage/rendering ports, and the turn driver.

Canonical imports:
    from turnflow.core.engine import TurnDriver, DialogRegistry, SequenceDialog
    from turnflow.core.engine.domain import DialogStack, DialogInstance
    from turnflow.core.engine.ports import AsyncStackStore
"""
from turnflow.core.engine.domain import (  # noqa: F401
    FramePhase,
    PromptRequest,
    ActivityKind,
    Activity,
    DialogInstance,
    DialogStack,
    DialogTurnStatus,
    DialogTurnResult,
    TurnResult,
)
from turnflow.core.engine.errors import (  # noqa: F401
    DialogError,
    UnknownDialog,
    DuplicateName,
    RegistryFrozen,
    NoActiveDialog,
    MalformedStep,
    CascadeLimitExceeded,
    ValidationFailed,
    PersistenceFailure,
)
from turnflow.core.engine.ports import AsyncStackStore, AsyncRenderer  # noqa: F401
from turnflow.core.engine.registry import DialogRegistry  # noqa: F401
from turnflow.core.engine.definitions import (  # noqa: F401
    DialogKind,
    DialogDefinition,
    SequenceDialog,
    PromptDialog,
    ComponentDialog,
    choice_prompt,
    text_prompt,
)
from turnflow.core.engine.prompts import recognize_choice, validate_input  # noqa: F401
from turnflow.core.engine.context import DialogContext, StepAction, ActionKind  # noqa: F401
from turnflow.core.engine.serialization import (  # noqa: F401
    stack_to_json,
    stack_from_json,
    stack_to_dict,
    stack_from_dict,
)
from turnflow.core.engine.driver import TurnDriver  # noqa: F401
