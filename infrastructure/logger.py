"""
CFGMATCH SEARCH LOGGER - The Search Trace

Records what a subgraph search did: which anchors were tried, which matches
were found, whether a step bound aborted the search. Events go to an
in-memory ring buffer and, optionally, to a newline-delimited JSON file.

Architecture:
- SearchEvent: msgspec.Struct record of one event
- EventBuffer: Thread-safe in-memory ring buffer
- FileLogger: Optional JSONL sink (msgspec.json)
- SearchLogger: Main interface used by the matcher

Usage:
    trace = SearchLogger()
    matcher = SubgraphMatcher(template, cfg, logger=trace)
    matcher.match()

    for event in trace.get_by_type(SearchEventType.MATCH_FOUND):
        print(event.anchor, event.mapping)

Plain diagnostics (not trace events) go through the standard `logging`
module under the "cfgmatch" logger hierarchy.
"""
import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

import msgspec

from core.ontology import SearchEventType

_log = logging.getLogger("cfgmatch.trace")


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class LoggerConfig:
    """Configuration for the search logger."""
    buffer_size: int = 10000            # In-memory buffer size
    trace_path: Optional[Path] = None   # JSONL file; None disables the file sink

    def __post_init__(self):
        if self.trace_path is not None:
            self.trace_path = Path(self.trace_path)


# =============================================================================
# EVENTS
# =============================================================================

class SearchEvent(msgspec.Struct, kw_only=True):
    """One recorded search event."""
    timestamp: str
    sequence: int
    event_type: str                         # SearchEventType value
    template: str = ""
    anchor: Optional[int] = None
    mapping: Optional[Dict[int, int]] = None
    steps: int = 0
    matches: int = 0
    policy: Optional[str] = None


def _now_utc() -> str:
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# EVENT BUFFER
# =============================================================================

class EventBuffer:
    """
    Thread-safe ring buffer for recent search events.

    O(1) append, O(n) query.
    """

    def __init__(self, max_size: int = 10000):
        self._buffer: deque = deque(maxlen=max_size)
        self._lock = threading.RLock()
        self._sequence = 0

    def append(self, event: SearchEvent) -> None:
        with self._lock:
            self._buffer.append(event)

    def get_last(self, n: int) -> List[SearchEvent]:
        with self._lock:
            items = list(self._buffer)
            return items[-n:] if n > 0 else []

    def get_by_type(self, event_type: str) -> List[SearchEvent]:
        with self._lock:
            return [e for e in self._buffer if e.event_type == event_type]

    def get_by_anchor(self, anchor: int) -> List[SearchEvent]:
        with self._lock:
            return [e for e in self._buffer if e.anchor == anchor]

    def all(self) -> List[SearchEvent]:
        with self._lock:
            return list(self._buffer)

    def append_next(self, make_event: Callable[[int], SearchEvent]) -> SearchEvent:
        """Build the event for the next sequence number and append it atomically."""
        with self._lock:
            self._sequence += 1
            event = make_event(self._sequence)
            self._buffer.append(event)
            return event

    def clear(self) -> None:
        with self._lock:
            self._buffer.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)


# =============================================================================
# FILE LOGGER
# =============================================================================

class FileLogger:
    """
    Appends events as newline-delimited JSON.
    """

    def __init__(self, path: Path):
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._encoder = msgspec.json.Encoder()
        self._file = open(self._path, "ab")

    def write(self, event: SearchEvent) -> None:
        with self._lock:
            if self._file is None:
                return
            self._file.write(self._encoder.encode(event) + b"\n")
            self._file.flush()

    def close(self) -> None:
        with self._lock:
            if self._file is not None:
                self._file.close()
                self._file = None

    @staticmethod
    def read_log(path: Path) -> List[SearchEvent]:
        """Read back a JSONL trace. Malformed lines are skipped with a warning."""
        path = Path(path)
        if not path.exists():
            return []

        decoder = msgspec.json.Decoder(type=SearchEvent)
        events = []
        with open(path, "rb") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    events.append(decoder.decode(line))
                except msgspec.DecodeError as e:
                    _log.warning("Skipping malformed trace line %d in %s: %s", lineno, path, e)
        return events


# =============================================================================
# SEARCH LOGGER (Main Interface)
# =============================================================================

class SearchLogger:
    """
    Main logging interface for subgraph searches.

    Thread-safe: worker threads of a parallel search may share one logger.
    """

    def __init__(self, config: Optional[LoggerConfig] = None):
        self.config = config or LoggerConfig()
        self._buffer = EventBuffer(self.config.buffer_size)
        self._file_logger: Optional[FileLogger] = None
        if self.config.trace_path is not None:
            self._file_logger = FileLogger(self.config.trace_path)

    def _record(self, event_type: SearchEventType, **fields) -> SearchEvent:
        event = self._buffer.append_next(
            lambda sequence: SearchEvent(
                timestamp=_now_utc(),
                sequence=sequence,
                event_type=event_type.value,
                **fields,
            )
        )
        if self._file_logger is not None:
            self._file_logger.write(event)
        return event

    # =========================================================================
    # LOGGING
    # =========================================================================

    def log_search_started(self, template: str, policy: str) -> SearchEvent:
        return self._record(SearchEventType.SEARCH_STARTED, template=template, policy=policy)

    def log_anchor(self, template: str, anchor: int) -> SearchEvent:
        return self._record(SearchEventType.ANCHOR_STARTED, template=template, anchor=anchor)

    def log_match(self, template: str, anchor: int, mapping: Dict[int, int]) -> SearchEvent:
        return self._record(
            SearchEventType.MATCH_FOUND, template=template, anchor=anchor, mapping=dict(mapping)
        )

    def log_abort(self, template: str, steps: int, matches: int) -> SearchEvent:
        _log.info("Search for template %r aborted after %d steps (%d matches)", template, steps, matches)
        return self._record(
            SearchEventType.SEARCH_ABORTED, template=template, steps=steps, matches=matches
        )

    def log_search_finished(self, template: str, steps: int, matches: int) -> SearchEvent:
        return self._record(
            SearchEventType.SEARCH_FINISHED, template=template, steps=steps, matches=matches
        )

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_events(self) -> List[SearchEvent]:
        return self._buffer.all()

    def get_recent_events(self, n: int = 100) -> List[SearchEvent]:
        return self._buffer.get_last(n)

    def get_by_type(self, event_type) -> List[SearchEvent]:
        if isinstance(event_type, SearchEventType):
            event_type = event_type.value
        return self._buffer.get_by_type(event_type)

    def get_by_anchor(self, anchor: int) -> List[SearchEvent]:
        return self._buffer.get_by_anchor(anchor)

    def clear(self) -> None:
        self._buffer.clear()

    def close(self) -> None:
        if self._file_logger is not None:
            self._file_logger.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

_global_logger: Optional[SearchLogger] = None


def get_logger() -> SearchLogger:
    """Get or create the global search logger."""
    global _global_logger
    if _global_logger is None:
        _global_logger = SearchLogger()
    return _global_logger


def configure_logger(config: LoggerConfig) -> SearchLogger:
    """Configure and return a new global search logger."""
    global _global_logger
    if _global_logger:
        _global_logger.close()
    _global_logger = SearchLogger(config)
    return _global_logger


def reset_logger() -> None:
    """Close and drop the global search logger."""
    global _global_logger
    if _global_logger:
        _global_logger.close()
    _global_logger = None
