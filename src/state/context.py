from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional
import logging
import threading
import config
from .repository import InMemoryDB, create_store

logger = logging.getLogger("state.context")

ChangeListener = Callable[[str, Dict[str, Any]], None]


class ChangeChannel:
    """Delivers member/session change notifications to registered callbacks.

    Listeners are called synchronously in registration order. A failing
    listener is logged and does not stop delivery to the others.
    """

    def __init__(self):
        self._listeners: List[ChangeListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, kind: str, data: Dict[str, Any]):
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(kind, data)
            except Exception:  # noqa: BLE001 - one bad listener must not block the rest
                logger.exception("Change listener failed for %s", kind)


def _today() -> date:
    return config.anchor_date() or date.today()


@dataclass
class CoreContext:
    """Everything a core call needs: the store, a clock and the change channel."""

    store: InMemoryDB
    clock: Callable[[], date] = _today
    changes: ChangeChannel = field(default_factory=ChangeChannel)
    correlation_id: Optional[str] = None

    def today(self) -> date:
        return self.clock()


def build_context(conninfo: Optional[str] = None) -> CoreContext:
    return CoreContext(store=create_store(conninfo))
