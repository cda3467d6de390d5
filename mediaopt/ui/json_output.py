"""Line-delimited JSON event stream for parent processes.

One object per line on stdout, tagged by ``type``. Optional fields that are
unset (``output_dir``, ``error``, ``details``) are written as ``null`` so every
line of a given type carries the same keys.
"""

import json
import sys
from typing import Dict, Optional, TextIO, Type
from mediaopt.domain.events import (
    Event,
    FileCompleted,
    FileStarted,
    ProgressUpdated,
    RunCompleted,
    RunFailed,
    RunStarted,
)
from mediaopt.infrastructure.event_bus import EventBus

EVENT_TYPES: Dict[Type[Event], str] = {
    RunStarted: "start",
    ProgressUpdated: "progress",
    FileStarted: "file_start",
    FileCompleted: "file_complete",
    RunCompleted: "complete",
    RunFailed: "error",
}


def event_to_line(event: Event) -> str:
    payload = {"type": EVENT_TYPES[type(event)]}
    payload.update(event.model_dump(mode="json"))
    return json.dumps(payload)


class JsonEventWriter:
    def __init__(self, event_bus: EventBus, stream: Optional[TextIO] = None):
        self._stream = stream
        for event_type in EVENT_TYPES:
            event_bus.subscribe(event_type, self.write)

    @property
    def stream(self) -> TextIO:
        # resolved late so redirected stdout (tests, pipes) is honoured
        return self._stream if self._stream is not None else sys.stdout

    def write(self, event: Event) -> None:
        stream = self.stream
        stream.write(event_to_line(event) + "\n")
        stream.flush()
