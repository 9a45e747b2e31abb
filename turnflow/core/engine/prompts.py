# turnflow/core/engine/prompts.py
"""
Prompt input validation.

All prompt input in the engine (prompt dialogs and inline step prompts)
goes through :func:`validate_input`, so a step that receives a choice can
rely on it being one of the labels it offered.
"""
from __future__ import annotations

from typing import Any, Callable, Optional, Sequence

from turnflow.core.engine.domain import PromptRequest
from turnflow.core.engine.errors import ValidationFailed

__all__ = ["norm", "lower", "recognize_choice", "validate_input", "Validator"]

Validator = Callable[[Any], Any]


def norm(s: Any) -> str:
    """Strip whitespace from *s* (None-safe, non-strings are stringified)."""
    if s is None:
        return ""
    return str(s).strip()


def lower(s: Any) -> str:
    """Normalise and casefold *s*."""
    return norm(s).casefold()


def recognize_choice(raw: Any, choices: Sequence[str], allow_index: bool = True) -> str:
    """Map user input to one of *choices*.

    Trimmed, case-insensitive exact match against the labels returns the
    canonical label.  With *allow_index* a 1-based number picks the label at
    that position (``"2"`` -> second choice).  Raises :class:`ValidationFailed`
    for anything else.
    """
    text = lower(raw)
    if not text:
        raise ValidationFailed("Empty input", raw=raw)

    for label in choices:
        if lower(label) == text:
            return label

    if allow_index and text.isdecimal():
        index = int(text)
        if 1 <= index <= len(choices):
            return choices[index - 1]

    raise ValidationFailed(f"'{norm(raw)}' is not one of the offered choices", raw=raw)


def validate_input(
    request: PromptRequest,
    raw: Any,
    validator: Optional[Validator] = None,
    require_text: bool = True,
) -> Any:
    """
    Validate one turn's input for a pending prompt.

    A custom validator takes precedence; otherwise choices are recognized;
    otherwise the input is accepted unchanged, provided it is non-blank when
    *require_text* is set.
    """
    if validator is not None:
        return validator(raw)

    if request.choices:
        return recognize_choice(raw, request.choices, allow_index=request.enumerate_choices)

    if require_text and not norm(raw):
        raise ValidationFailed("Empty input", raw=raw)
    return raw
