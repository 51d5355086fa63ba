"""
Subscriber lists for rule and engine notifications.
"""

import asyncio
import inspect
from typing import Any, Callable, Dict, List, Set

from shared.logging import get_logger


Listener = Callable[..., Any]


class EventEmitter:
    """Named channels of listeners, invoked in registration order.

    Delivery is fire-and-forget: coroutine listeners are scheduled as tasks
    and not awaited, and a failing listener is logged without interrupting
    evaluation or the remaining listeners.
    """

    def __init__(self, name: str = "rules_engine.notifications"):
        self.logger = get_logger(name)
        self._listeners: Dict[str, List[Listener]] = {}
        self._pending: Set["asyncio.Task[Any]"] = set()

    def on(self, event: str, listener: Listener) -> Listener:
        """Subscribe a listener; returns it so it can be used as a decorator."""
        if not callable(listener):
            raise TypeError("listener must be callable")
        self._listeners.setdefault(event, []).append(listener)
        return listener

    def once(self, event: str, listener: Listener) -> Listener:
        """Subscribe a listener that is removed after its first delivery."""
        def wrapper(*args: Any) -> Any:
            self.off(event, wrapper)
            return listener(*args)

        self.on(event, wrapper)
        return wrapper

    def off(self, event: str, listener: Listener) -> bool:
        """Unsubscribe a listener; returns whether it was subscribed."""
        listeners = self._listeners.get(event)
        if not listeners or listener not in listeners:
            return False
        listeners.remove(listener)
        if not listeners:
            del self._listeners[event]
        return True

    def listeners(self, event: str) -> List[Listener]:
        return list(self._listeners.get(event, ()))

    def emit(self, event: str, *args: Any) -> int:
        """Deliver to every listener of the channel; returns how many were invoked."""
        listeners = self.listeners(event)
        for listener in listeners:
            try:
                outcome = listener(*args)
            except Exception as e:
                self.logger.error("Listener failed", channel=event, error=str(e))
                continue
            if inspect.isawaitable(outcome):
                task = asyncio.ensure_future(outcome)
                self._pending.add(task)
                task.add_done_callback(self._listener_done)
        return len(listeners)

    def _listener_done(self, task: "asyncio.Task[Any]") -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.logger.error("Async listener failed", error=str(error))

    async def drain(self) -> None:
        """Wait for outstanding async listeners (shutdown and tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
