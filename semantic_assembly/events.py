"""Progress-event stream from the generation and assembly steps to any presentation layer."""

import logging
from collections import deque
from typing import Any, Callable

from semantic_assembly.models import ProgressEvent

logger = logging.getLogger(__name__)

Listener = Callable[[ProgressEvent], None]


class ProgressBus:
    """Broadcasts progress events. Emitting works the same with or without listeners."""

    def __init__(self, history_size: int = 200) -> None:
        self._listeners: list[Listener] = []
        self.history: deque[ProgressEvent] = deque(maxlen=history_size)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a callable that removes it again."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def emit(
        self,
        phase: str,
        progress: int,
        message: str,
        data: Any = None,
        request: int | None = None,
    ) -> ProgressEvent:
        event = ProgressEvent(phase=phase, progress=progress, message=message, data=data, request=request)
        self.history.append(event)
        logger.debug("Progress: %s %d%% %s", phase, progress, message)
        for listener in list(self._listeners):
            listener(event)
        return event

    @property
    def last(self) -> ProgressEvent | None:
        return self.history[-1] if self.history else None
