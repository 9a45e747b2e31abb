# turnflow/core/engine/registry.py
"""
Dialog registry: name -> dialog definition.

Built during startup, then frozen by the turn driver.  Nothing writes to a
frozen registry, so concurrent turns can resolve names without locking.
Registries are passed in explicitly; several can coexist (one per bot, one
per test).
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable, Iterator, Optional, Sequence

from turnflow.core.engine.errors import DuplicateName, RegistryFrozen, UnknownDialog

if TYPE_CHECKING:
    from turnflow.core.engine.definitions import DialogDefinition

logger = logging.getLogger(__name__)


class DialogRegistry:
    """Named dialog definitions, in registration order."""

    def __init__(self, definitions: Iterable["DialogDefinition"] = ()) -> None:
        self._dialogs: dict[str, "DialogDefinition"] = {}
        self._frozen = False
        for definition in definitions:
            self.register(definition)

    def __contains__(self, name: object) -> bool:
        return name in self._dialogs

    def __len__(self) -> int:
        return len(self._dialogs)

    def __iter__(self) -> Iterator["DialogDefinition"]:
        return iter(self._dialogs.values())

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def first_name(self) -> Optional[str]:
        """Name of the first registered dialog (None when empty)"""
        return next(iter(self._dialogs), None)

    def names(self) -> list[str]:
        return list(self._dialogs)

    def register(self, definition: "DialogDefinition") -> "DialogDefinition":
        """Add a definition; returns it so calls can be chained at module level."""
        if self._frozen:
            raise RegistryFrozen(f"Cannot register '{definition.name}': registry is frozen")
        if definition.name in self._dialogs:
            raise DuplicateName(definition.name)
        self._dialogs[definition.name] = definition
        logger.debug("Registered dialog: %s (%s)", definition.name, definition.kind.value)
        return definition

    def resolve(self, name: str) -> "DialogDefinition":
        definition = self._dialogs.get(name)
        if definition is None:
            raise UnknownDialog(name)
        return definition

    def resolve_in_scope(
        self,
        name: str,
        scope: Sequence[str] = (),
    ) -> tuple["DialogDefinition", tuple[str, ...]]:
        """
        Resolve ``name`` as seen from inside the component path ``scope``.

        The innermost component registry is searched first, then each
        enclosing one out to this (root) registry.  Returns the definition and
        the scope of the registry it was found in.
        """
        chain = [self]
        registry = self
        for component_name in scope:
            component = registry.resolve(component_name)
            inner = getattr(component, "dialogs", None)
            if inner is None:
                raise UnknownDialog(
                    component_name,
                    f"Scope element '{component_name}' is not a component dialog",
                )
            registry = inner
            chain.append(registry)

        for depth in range(len(chain) - 1, -1, -1):
            if name in chain[depth]:
                return chain[depth].resolve(name), tuple(scope[:depth])

        where = "/".join(scope) or "<root>"
        raise UnknownDialog(name, f"Unknown dialog '{name}' (searched from {where})")

    def freeze(self) -> None:
        """Make this registry and every nested component registry read-only."""
        self._frozen = True
        for definition in self._dialogs.values():
            inner = getattr(definition, "dialogs", None)
            if inner is not None:
                inner.freeze()
