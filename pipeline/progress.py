from typing import Callable, Iterator, Optional

from schemas import ConversionState, ProgressEvent

ProgressListener = Callable[[ProgressEvent], None]


class ProgressLog:
    """Ordered, replayable record of one conversion's status updates.

    Events are stored in emission order and forwarded synchronously to
    an optional listener (a CLI printer, a UI bridge).
    """

    def __init__(self, listener: Optional[ProgressListener] = None):
        self._events: list[ProgressEvent] = []
        self._listener = listener

    def emit(
        self,
        stage: ConversionState,
        message: str,
        current: Optional[int] = None,
        total: Optional[int] = None,
    ) -> ProgressEvent:
        event = ProgressEvent(stage=stage, message=message, current=current, total=total)
        self._events.append(event)
        if self._listener is not None:
            self._listener(event)
        return event

    def replay(self, listener: ProgressListener) -> None:
        """Send every recorded event, in order, to another listener."""
        for event in self._events:
            listener(event)

    @property
    def events(self) -> list[ProgressEvent]:
        return list(self._events)

    @property
    def last(self) -> Optional[ProgressEvent]:
        return self._events[-1] if self._events else None

    def __iter__(self) -> Iterator[ProgressEvent]:
        return iter(list(self._events))

    def __len__(self) -> int:
        return len(self._events)
