"""
Named event callbacks, modelled on darktable's register_event.
"""

import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .logging_setup import get_logger

logger = get_logger(__name__)

POST_IMPORT_IMAGE = "post-import-image"


@dataclass
class EventResult:
    """Outcome of one callback for one emitted event."""
    name: str
    value: Any = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None


class EventRegistry:
    """Callbacks registered under a name for an event type."""

    def __init__(self):
        self._handlers: Dict[str, Dict[str, Callable]] = {}

    def register(self, name: str, event_type: str, callback: Callable) -> None:
        """
        Register a callback. It is invoked as ``callback(event_type, *args)``.

        Raises:
            ValueError: If the name is already registered for this event
        """
        handlers = self._handlers.setdefault(event_type, {})
        if name in handlers:
            raise ValueError(f"Handler '{name}' already registered for event '{event_type}'")
        handlers[name] = callback
        logger.debug(f"Registered handler '{name}' for event '{event_type}'")

    def unregister(self, name: str, event_type: str) -> bool:
        handlers = self._handlers.get(event_type, {})
        if handlers.pop(name, None) is None:
            return False
        if not handlers:
            self._handlers.pop(event_type, None)
        logger.debug(f"Unregistered handler '{name}' for event '{event_type}'")
        return True

    def handlers(self, event_type: str) -> List[str]:
        return list(self._handlers.get(event_type, {}))

    def emit(self, event_type: str, *args) -> List[EventResult]:
        """
        Call every handler for the event in registration order.

        A failing handler is logged and reported in its result; the remaining
        handlers still run.
        """
        results = []
        for name, callback in list(self._handlers.get(event_type, {}).items()):
            try:
                results.append(EventResult(name, callback(event_type, *args)))
            except Exception as e:
                logger.error(f"Handler '{name}' failed for event '{event_type}': {str(e)}")
                results.append(EventResult(name, error=str(e)))
        return results

    def clear(self) -> None:
        self._handlers.clear()


_registry: Optional[EventRegistry] = None
_registry_lock = threading.Lock()


def init_registry() -> EventRegistry:
    """Create the process-wide registry (idempotent)."""
    global _registry
    with _registry_lock:
        if _registry is None:
            _registry = EventRegistry()
        return _registry


def get_registry() -> EventRegistry:
    """
    Raises:
        RuntimeError: If init_registry() has not been called
    """
    if _registry is None:
        raise RuntimeError("Event registry not initialized")
    return _registry


def shutdown_registry() -> None:
    """Unregister all handlers and drop the process-wide registry."""
    global _registry
    with _registry_lock:
        if _registry is not None:
            _registry.clear()
            _registry = None
