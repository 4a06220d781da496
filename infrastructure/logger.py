"""
WORKFLOW MUTATION LOG - The Edit Recorder

Keeps an in-memory record of every mutation applied through the workflow
store so an editing session can be inspected or replayed for debugging.

Architecture:
- MutationEvent: One recorded mutation (msgspec Struct)
- EventBuffer: Thread-safe ring buffer of recent events
- MutationLog: Logging interface used by WorkflowStore

Usage:
    log = MutationLog()
    log.log_node_added("smartchat-lx2k9f0-abc", "smartChat")
    log.log_edge_added("edge-a-b-...", "a", "b")

    for event in log.get_events_for_node("smartchat-lx2k9f0-abc"):
        print(f"{event.sequence}: {event.mutation_type}")

The log never writes to disk; subscribers decide what to do with events.
"""
import logging
import threading
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

import msgspec

from infrastructure.config import MutationLogConfig, get_config


logger = logging.getLogger(__name__)


# =============================================================================
# EVENTS
# =============================================================================

class MutationType(str, Enum):
    """Types of workflow mutations."""
    NODE_ADDED = "NODE_ADDED"
    NODE_REMOVED = "NODE_REMOVED"
    NODE_RENAMED = "NODE_RENAMED"
    EDGE_ADDED = "EDGE_ADDED"
    EDGE_REMOVED = "EDGE_REMOVED"
    HANDLE_ADDED = "HANDLE_ADDED"
    HANDLE_REMOVED = "HANDLE_REMOVED"
    HANDLE_RENAMED = "HANDLE_RENAMED"
    GRAPH_LOADED = "GRAPH_LOADED"
    AUTO_FIX_APPLIED = "AUTO_FIX_APPLIED"


class MutationEvent(msgspec.Struct, kw_only=True):
    """A single recorded mutation."""
    timestamp: str
    sequence: int
    mutation_type: str                 # MutationType value
    node_id: Optional[str] = None
    node_type: Optional[str] = None
    edge_id: Optional[str] = None
    handle_id: Optional[str] = None
    source_id: Optional[str] = None
    target_id: Optional[str] = None
    old_id: Optional[str] = None       # For renames
    new_id: Optional[str] = None
    detail: Optional[str] = None


# =============================================================================
# EVENT BUFFER
# =============================================================================

class EventBuffer:
    """
    Thread-safe ring buffer for recent mutation events.

    Provides O(1) append and O(n) query for filtering.
    """

    def __init__(self, max_size: int = 10000):
        self._buffer: deque[MutationEvent] = deque(maxlen=max_size)
        self._lock = threading.RLock()
        self._sequence = 0

    def append(self, event: MutationEvent) -> None:
        with self._lock:
            self._buffer.append(event)

    def get_last(self, n: int) -> List[MutationEvent]:
        """Get the last n events."""
        with self._lock:
            items = list(self._buffer)
            return items[-n:] if n > 0 else []

    def get_by_node(self, node_id: str) -> List[MutationEvent]:
        """Events touching a node, including edges that start or end there."""
        with self._lock:
            return [
                e for e in self._buffer
                if node_id in (e.node_id, e.source_id, e.target_id, e.old_id, e.new_id)
            ]

    def get_by_type(self, mutation_type: str) -> List[MutationEvent]:
        with self._lock:
            return [e for e in self._buffer if e.mutation_type == mutation_type]

    def next_sequence(self) -> int:
        with self._lock:
            self._sequence += 1
            return self._sequence

    def clear(self) -> None:
        with self._lock:
            self._buffer.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)


# =============================================================================
# MUTATION LOG (Main Interface)
# =============================================================================

class MutationLog:
    """
    Logging interface for workflow mutations.

    A disabled log still hands back events (so callers need no branching)
    but neither buffers nor broadcasts them.
    """

    def __init__(self, config: Optional[MutationLogConfig] = None):
        self.config = config or get_config().mutation_log
        self._buffer = EventBuffer(self.config.buffer_size)
        self._subscribers: List[Callable[[MutationEvent], None]] = []

    def _now(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    def _record(self, mutation_type: MutationType, **fields) -> MutationEvent:
        event = MutationEvent(
            timestamp=self._now(),
            sequence=self._buffer.next_sequence(),
            mutation_type=mutation_type.value,
            **fields,
        )
        if not self.config.enabled:
            return event

        self._buffer.append(event)
        logger.debug("mutation %s #%d %s", event.mutation_type, event.sequence, fields)

        for subscriber in list(self._subscribers):
            try:
                subscriber(event)
            except Exception:
                logger.exception("Mutation subscriber failed for %s", event.mutation_type)
        return event

    # =========================================================================
    # LOGGING METHODS
    # =========================================================================

    def log_node_added(self, node_id: str, node_type: str) -> MutationEvent:
        return self._record(MutationType.NODE_ADDED, node_id=node_id, node_type=node_type)

    def log_node_removed(self, node_id: str, node_type: str) -> MutationEvent:
        return self._record(MutationType.NODE_REMOVED, node_id=node_id, node_type=node_type)

    def log_node_renamed(self, old_id: str, new_id: str) -> MutationEvent:
        return self._record(MutationType.NODE_RENAMED, old_id=old_id, new_id=new_id, node_id=new_id)

    def log_edge_added(self, edge_id: str, source_id: str, target_id: str) -> MutationEvent:
        return self._record(
            MutationType.EDGE_ADDED, edge_id=edge_id, source_id=source_id, target_id=target_id
        )

    def log_edge_removed(self, edge_id: str, source_id: str, target_id: str) -> MutationEvent:
        return self._record(
            MutationType.EDGE_REMOVED, edge_id=edge_id, source_id=source_id, target_id=target_id
        )

    def log_handle_added(self, node_id: str, handle_id: str) -> MutationEvent:
        return self._record(MutationType.HANDLE_ADDED, node_id=node_id, handle_id=handle_id)

    def log_handle_removed(self, node_id: str, handle_id: str) -> MutationEvent:
        return self._record(MutationType.HANDLE_REMOVED, node_id=node_id, handle_id=handle_id)

    def log_handle_renamed(self, node_id: str, old_id: str, new_id: str) -> MutationEvent:
        return self._record(
            MutationType.HANDLE_RENAMED, node_id=node_id, handle_id=new_id, old_id=old_id, new_id=new_id
        )

    def log_graph_loaded(self, node_count: int, edge_count: int) -> MutationEvent:
        return self._record(
            MutationType.GRAPH_LOADED, detail=f"{node_count} nodes, {edge_count} edges"
        )

    def log_auto_fix(self, change: str) -> MutationEvent:
        return self._record(MutationType.AUTO_FIX_APPLIED, detail=change)

    # =========================================================================
    # QUERY METHODS
    # =========================================================================

    def get_recent_events(self, n: int = 100) -> List[MutationEvent]:
        return self._buffer.get_last(n)

    def get_events_for_node(self, node_id: str) -> List[MutationEvent]:
        return self._buffer.get_by_node(node_id)

    def get_events_by_type(self, mutation_type: str) -> List[MutationEvent]:
        return self._buffer.get_by_type(mutation_type)

    def clear(self) -> None:
        self._buffer.clear()

    def __len__(self) -> int:
        return len(self._buffer)

    # =========================================================================
    # SUBSCRIPTION
    # =========================================================================

    def subscribe(self, callback: Callable[[MutationEvent], None]) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[MutationEvent], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

_global_log: Optional[MutationLog] = None


def get_mutation_log() -> MutationLog:
    """Get or create the global mutation log."""
    global _global_log
    if _global_log is None:
        _global_log = MutationLog()
    return _global_log


def configure_mutation_log(config: MutationLogConfig) -> MutationLog:
    """Replace the global mutation log with a freshly configured one."""
    global _global_log
    _global_log = MutationLog(config)
    return _global_log


def reset_mutation_log() -> None:
    global _global_log
    _global_log = None
