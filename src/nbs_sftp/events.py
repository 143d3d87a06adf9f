"""
Structured event log for SFTP sessions.

Every connection and task operation emits events that can be collected
in memory (tests) or appended to a JSONL file (diagnostics).

Event types:
- CONNECT / DISCONNECT: Session lifecycle
- AUTH: Authentication chain offered, accepted or rejected
- TRUST: Host key fingerprint check
- LIST, TRANSFER, DELETE, READ, WRITE: Task operations
- ERROR: Any failure, with the error's type and message

A JSONL line looks like:
    {"event_type": "TRANSFER", "timestamp": 1700000000000.0,
     "data": {"operation": "move", "source_path": "/in/a.txt", ...}}

Credentials never reach an event: emitting a field named in
SECRET_FIELDS is a programming error.
"""
from __future__ import annotations

import json
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import IO, Any, Iterator

SECRET_FIELDS = frozenset({
    "password",
    "passphrase",
    "private_key_passphrase",
    "private_key_string",
    "response",
    "responses",
})


class EventType(str, Enum):
    """SFTP event categories."""
    CONNECT = "CONNECT"
    AUTH = "AUTH"
    TRUST = "TRUST"
    LIST = "LIST"
    TRANSFER = "TRANSFER"
    DELETE = "DELETE"
    READ = "READ"
    WRITE = "WRITE"
    DISCONNECT = "DISCONNECT"
    ERROR = "ERROR"


class OperationStatus(str, Enum):
    """Outcome recorded by EventEmitter.timed_event()."""
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Event:
    """One logged occurrence; timestamp is Unix time in milliseconds."""
    event_type: EventType
    timestamp: float = field(default_factory=lambda: time.time() * 1000)
    data: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.event_type = EventType(self.event_type)
        assert self.timestamp > 0, f"Timestamp must be positive, got {self.timestamp}"

    @property
    def path(self) -> str | None:
        """The remote path the event concerns, if any."""
        return self.data.get("path") or self.data.get("source_path")

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "timestamp": self.timestamp,
            "data": self.data,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class EventCollector:
    """In-memory event sink, mostly for tests."""

    def __init__(self) -> None:
        self._events: list[Event] = []

    def emit(self, event: Event) -> None:
        self._events.append(event)

    @property
    def events(self) -> list[Event]:
        return list(self._events)

    @property
    def event_types(self) -> list[str]:
        """Event types in emission order, e.g. ["CONNECT", "TRUST", ...]."""
        return [e.event_type.value for e in self._events]

    def clear(self) -> None:
        self._events.clear()

    def get_by_type(self, event_type: str | EventType) -> list[Event]:
        event_type = EventType(event_type)
        return [e for e in self._events if e.event_type == event_type]

    def for_path(self, path: str) -> list[Event]:
        """Events that concern a single remote path."""
        return [e for e in self._events if e.path == path]


class JSONLEventWriter:
    """Appends events to a file, one JSON object per line."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._file: IO[str] | None = None

    @property
    def path(self) -> Path:
        return self._path

    def open(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._file = self._path.open("a", encoding="utf-8")

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

    def emit(self, event: Event) -> None:
        assert self._file is not None, "Writer not opened. Call open() first."
        self._file.write(event.to_json() + "\n")
        self._file.flush()

    def __enter__(self) -> "JSONLEventWriter":
        self.open()
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class EventEmitter:
    """
    Fans events out to an optional collector and an optional JSONL file.

    An emitter with neither sink still builds and returns events, so
    operations run without a connection-level log can call it freely.
    """

    def __init__(
        self,
        collector: EventCollector | None = None,
        jsonl_path: Path | str | None = None,
    ) -> None:
        self._collector = collector
        self._writer: JSONLEventWriter | None = None
        if jsonl_path:
            self._writer = JSONLEventWriter(jsonl_path)
            self._writer.open()

    def emit(self, event_type: str | EventType, **data: Any) -> Event:
        """Create an event, dispatch it to every sink, and return it."""
        leaked = SECRET_FIELDS.intersection(data)
        assert not leaked, f"Refusing to log secret fields: {sorted(leaked)}"

        event = Event(event_type=EventType(event_type), data=data)
        if self._collector is not None:
            self._collector.emit(event)
        if self._writer is not None:
            self._writer.emit(event)
        return event

    def close(self) -> None:
        if self._writer is not None:
            self._writer.close()

    @contextmanager
    def timed_event(
        self,
        event_type: str | EventType,
        **initial_data: Any,
    ) -> Iterator[dict[str, Any]]:
        """
        Emit one event when the block exits, with status and duration_ms.

        The yielded dict can be filled in inside the block. If the block
        raises, the event is still emitted with status "failed" plus the
        exception's error_type and error_message, and the exception
        propagates.

        Usage:
            with emitter.timed_event(EventType.READ, path="/in/a.txt") as data:
                content = await f.read()
                data["size"] = len(content)
        """
        start_ms = time.time() * 1000
        event_data = dict(initial_data)
        try:
            yield event_data
        except BaseException as e:
            event_data["status"] = OperationStatus.FAILED.value
            event_data["error_type"] = getattr(e, "error_type", type(e).__name__)
            event_data["error_message"] = str(e)
            raise
        else:
            event_data.setdefault("status", OperationStatus.COMPLETED.value)
        finally:
            event_data["duration_ms"] = (time.time() * 1000) - start_ms
            self.emit(event_type, **event_data)
