"""Central action registry and built-in action discovery."""

from __future__ import annotations

import importlib
import inspect
import logging
import pkgutil
from types import ModuleType
from typing import Iterator

from reclaim.actions.base import CleanupAction, DangerousAction
from reclaim.models.step import StepKind

log = logging.getLogger(__name__)

_ABSTRACT_BASES = {CleanupAction, DangerousAction}


class ActionRegistry:
    """Maps step kinds to cleanup actions and names to dangerous actions."""

    def __init__(self) -> None:
        self._actions: dict[StepKind, CleanupAction] = {}
        self._dangerous: dict[str, DangerousAction] = {}

    def register(self, action: CleanupAction | DangerousAction) -> None:
        """Register an action instance."""
        if isinstance(action, DangerousAction):
            if action.name in self._dangerous:
                log.warning("Dangerous action '%s' already registered, skipping duplicate", action.name)
                return
            self._dangerous[action.name] = action
            log.debug("Registered dangerous action: %s", action.name)
            return

        if action.kind in self._actions:
            log.warning("Action for '%s' already registered, skipping duplicate", action.kind.value)
            return
        self._actions[action.kind] = action
        log.debug("Registered action: %s (%s)", action.kind.value, type(action).__name__)

    def get(self, kind: StepKind) -> CleanupAction | None:
        """Get the action implementing a step kind."""
        return self._actions.get(kind)

    def get_dangerous(self, name: str) -> DangerousAction | None:
        return self._dangerous.get(name)

    def dangerous_actions(self) -> list[DangerousAction]:
        return sorted(self._dangerous.values(), key=lambda a: a.name)

    def __len__(self) -> int:
        return len(self._actions) + len(self._dangerous)

    def __iter__(self) -> Iterator[CleanupAction]:
        return iter(self._actions[kind] for kind in StepKind if kind in self._actions)

    def __contains__(self, kind: StepKind) -> bool:
        return kind in self._actions


def _find_actions_in_module(module: ModuleType) -> list[type]:
    """Find all concrete action classes defined in a module."""
    found: list[type] = []
    for _, obj in inspect.getmembers(module, inspect.isclass):
        if obj in _ABSTRACT_BASES or inspect.isabstract(obj):
            continue
        if issubclass(obj, (CleanupAction, DangerousAction)) and obj.__module__ == module.__name__:
            found.append(obj)
    return found


def load_actions(registry: ActionRegistry) -> None:
    """Discover and register the built-in actions from ``reclaim.actions``."""
    import reclaim.actions as actions_pkg

    classes: list[type] = []
    for _importer, modname, _ispkg in pkgutil.iter_modules(actions_pkg.__path__):
        try:
            module = importlib.import_module(f"reclaim.actions.{modname}")
        except Exception:
            log.exception("Failed to load built-in action module: %s", modname)
            continue
        classes.extend(_find_actions_in_module(module))

    for cls in classes:
        try:
            registry.register(cls())
        except Exception:
            log.exception("Failed to instantiate action: %s", cls.__name__)

    log.info("Loaded %d actions", len(registry))


def default_registry() -> ActionRegistry:
    registry = ActionRegistry()
    load_actions(registry)
    return registry
