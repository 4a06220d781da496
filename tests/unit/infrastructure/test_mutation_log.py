"""
Unit tests for infrastructure/logger.py - MutationLog
"""
import threading

from infrastructure.config import MutationLogConfig
from infrastructure.logger import (
    EventBuffer,
    MutationEvent,
    MutationLog,
    MutationType,
    configure_mutation_log,
    get_mutation_log,
    reset_mutation_log,
)


# =============================================================================
# EVENT BUFFER
# =============================================================================

def _event(seq, node_id=None, **kwargs):
    return MutationEvent(
        timestamp="2026-01-01T00:00:00+00:00",
        sequence=seq,
        mutation_type=MutationType.NODE_ADDED.value,
        node_id=node_id,
        **kwargs,
    )


def test_buffer_drops_oldest():
    buffer = EventBuffer(max_size=3)
    for seq in range(5):
        buffer.append(_event(seq))

    assert len(buffer) == 3
    assert [e.sequence for e in buffer.get_last(10)] == [2, 3, 4]
    assert buffer.get_last(0) == []


def test_buffer_matches_edge_endpoints_and_renames():
    buffer = EventBuffer()
    buffer.append(_event(1, node_id="a"))
    buffer.append(_event(2, source_id="a", target_id="b"))
    buffer.append(_event(3, old_id="a", new_id="c"))
    buffer.append(_event(4, node_id="z"))

    assert [e.sequence for e in buffer.get_by_node("a")] == [1, 2, 3]


def test_sequence_is_unique_across_threads():
    buffer = EventBuffer()
    seen = []
    lock = threading.Lock()

    def worker():
        local = [buffer.next_sequence() for _ in range(500)]
        with lock:
            seen.extend(local)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(seen) == list(range(1, 2001))


# =============================================================================
# MUTATION LOG
# =============================================================================

def test_log_records_events_in_order():
    log = MutationLog(MutationLogConfig())

    log.log_node_added("n1", "rag")
    log.log_edge_added("e1", "n1", "n2")
    log.log_node_renamed("n1", "n9")

    events = log.get_recent_events()
    assert [e.mutation_type for e in events] == ["NODE_ADDED", "EDGE_ADDED", "NODE_RENAMED"]
    assert [e.sequence for e in events] == [1, 2, 3]
    assert [e.sequence for e in log.get_events_for_node("n9")] == [3]


def test_handle_and_fix_events():
    log = MutationLog(MutationLogConfig())

    log.log_handle_added("n1", "h1")
    log.log_handle_renamed("n1", "h1", "h2")
    log.log_handle_removed("n1", "h2")
    log.log_auto_fix("Fixed duplicate node id: a -> b")
    loaded = log.log_graph_loaded(3, 2)

    assert loaded.detail == "3 nodes, 2 edges"
    assert len(log.get_events_by_type(MutationType.HANDLE_RENAMED.value)) == 1
    assert log.get_events_by_type("AUTO_FIX_APPLIED")[0].detail.startswith("Fixed duplicate")
    assert len(log) == 5


def test_disabled_log_returns_but_does_not_keep_events():
    log = MutationLog(MutationLogConfig(enabled=False))
    received = []
    log.subscribe(received.append)

    event = log.log_node_added("n1", "rag")

    assert event.node_id == "n1"
    assert len(log) == 0
    assert received == []


def test_subscribers_receive_events():
    log = MutationLog(MutationLogConfig())
    received = []

    log.subscribe(received.append)
    log.log_edge_removed("e1", "a", "b")
    log.unsubscribe(received.append)
    log.log_edge_removed("e2", "a", "b")

    assert [e.edge_id for e in received] == ["e1"]


def test_failing_subscriber_does_not_break_logging(caplog):
    log = MutationLog(MutationLogConfig())

    def boom(event):
        raise RuntimeError("subscriber down")

    log.subscribe(boom)
    with caplog.at_level("ERROR", logger="infrastructure.logger"):
        log.log_node_removed("n1", "rag")

    assert len(log) == 1
    assert "Mutation subscriber failed" in caplog.text


def test_global_log_lifecycle():
    first = get_mutation_log()
    assert get_mutation_log() is first

    configured = configure_mutation_log(MutationLogConfig(buffer_size=5))
    assert get_mutation_log() is configured
    assert configured.config.buffer_size == 5

    reset_mutation_log()
    assert get_mutation_log() is not configured
