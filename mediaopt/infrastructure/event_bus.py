import threading
from typing import Type, Callable, List, Dict, Any, Optional
from mediaopt.domain.events import Event


class EventBus:
    """Synchronous pub/sub shared by worker threads.

    Publishing is serialized, so subscribers see one event at a time and never
    need their own locking for output ordering.
    """

    def __init__(self):
        self._subscribers: Dict[Type[Event], List[Callable[[Any], None]]] = {}
        self._lock = threading.RLock()

    def subscribe(self, event_type: Type[Event], callback: Optional[Callable[[Any], None]] = None):
        """Subscribes a callback to an event type. Can be used as a decorator."""
        if callback is None:
            def decorator(func: Callable[[Any], None]):
                self.subscribe(event_type, func)
                return func
            return decorator

        with self._lock:
            self._subscribers.setdefault(event_type, []).append(callback)

    def publish(self, event: Event):
        """Delivers the event to subscribers of its exact type, in subscription order."""
        with self._lock:
            callbacks = list(self._subscribers.get(type(event), ()))
            for callback in callbacks:
                callback(event)
