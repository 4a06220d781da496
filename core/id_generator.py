"""
WORKFLOW ID GENERATOR - Collision-Free Identifiers

Mints ids for nodes, handles and edges that stay unique even when many are
created within one clock tick (pasting a subgraph), and that never collide
with ids the caller currently considers taken.

Id formats:
    node    {nodetype}-{token}-{random}
    handle  {node_id}-{in|out}-{token}-{random}
    edge    edge-{source}-{target}[-{src handle tail}][-{tgt handle tail}]-{token}-{random}

where token = base36(epoch ms) + base36(counter) and the counter is a
process-wide, strictly increasing integer. Two calls in the same
millisecond therefore never share a token.

Collision control:
    The generator asks an IdOracle whether a candidate is taken and retries
    up to `max_retries` times. When every attempt is taken it returns a
    wide-entropy fallback (uuid4) without asking again. Generation never
    raises.
"""
import logging
import secrets
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Protocol, Tuple, Union

from core.ontology import HandleDirection, IdKind, NodeType
from infrastructure.config import IdGenerationConfig, get_config


logger = logging.getLogger(__name__)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"
_FALLBACK_PREFIX = "node"
_DETACHED_ENDPOINT = "unknown"


def to_base36(value: int) -> str:
    """Non-negative int to lowercase base36."""
    if value < 0:
        raise ValueError("to_base36 expects a non-negative integer")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def _epoch_ms() -> int:
    return time.time_ns() // 1_000_000


def _random_suffix(length: int) -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(length))


# =============================================================================
# MONOTONIC COUNTER
# =============================================================================

class MonotonicCounter:
    """
    Strictly increasing integer shared by every generator in the process.

    Increments happen under a lock, so concurrent callers always observe
    distinct values.
    """

    def __init__(self, start: int = 0):
        self._value = start
        self._lock = threading.Lock()

    def next(self) -> int:
        """Return the current value and advance."""
        with self._lock:
            value = self._value
            self._value += 1
            return value

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


_global_counter: Optional[MonotonicCounter] = None
_global_counter_lock = threading.Lock()


def get_id_counter() -> MonotonicCounter:
    """Get or create the process-wide counter."""
    global _global_counter
    with _global_counter_lock:
        if _global_counter is None:
            _global_counter = MonotonicCounter()
        return _global_counter


def reset_id_counter(start: int = 0) -> MonotonicCounter:
    """Replace the process-wide counter. Intended for tests."""
    global _global_counter
    with _global_counter_lock:
        _global_counter = MonotonicCounter(start)
        return _global_counter


def _time_token(counter: MonotonicCounter) -> str:
    return to_base36(_epoch_ms()) + to_base36(counter.next())


# =============================================================================
# ID ORACLES
# =============================================================================

class IdOracle(Protocol):
    """
    Answers "is this id already in use?" for each id namespace.

    Implemented by whatever owns the graph (an editor store, a snapshot
    index). Handle ids are only compared within one node.
    """

    def is_node_id_taken(self, node_id: str) -> bool: ...

    def is_edge_id_taken(self, edge_id: str) -> bool: ...

    def is_handle_id_taken(self, node_id: str, handle_id: str) -> bool: ...


class NullOracle:
    """An oracle for which nothing is taken."""

    def is_node_id_taken(self, node_id: str) -> bool:
        return False

    def is_edge_id_taken(self, edge_id: str) -> bool:
        return False

    def is_handle_id_taken(self, node_id: str, handle_id: str) -> bool:
        return False


class CompositeOracle:
    """An id is taken if any member oracle says so."""

    def __init__(self, *oracles: IdOracle):
        self._oracles = [o for o in oracles if o is not None]

    def is_node_id_taken(self, node_id: str) -> bool:
        return any(o.is_node_id_taken(node_id) for o in self._oracles)

    def is_edge_id_taken(self, edge_id: str) -> bool:
        return any(o.is_edge_id_taken(edge_id) for o in self._oracles)

    def is_handle_id_taken(self, node_id: str, handle_id: str) -> bool:
        return any(o.is_handle_id_taken(node_id, handle_id) for o in self._oracles)


# =============================================================================
# RESULTS
# =============================================================================

@dataclass
class IdCheckResult:
    """Outcome of a batch id check."""
    valid: bool
    conflicts: List[str] = field(default_factory=list)


# =============================================================================
# GENERATOR
# =============================================================================

NodeTypeLike = Union[NodeType, str]
DirectionLike = Union[HandleDirection, str]


def _type_prefix(node_type: NodeTypeLike) -> str:
    value = node_type.value if isinstance(node_type, NodeType) else str(node_type)
    return value.lower() or _FALLBACK_PREFIX


def _port_label(direction: DirectionLike) -> str:
    """`in`/`out` for known directions; any other label is embedded as given."""
    if isinstance(direction, HandleDirection):
        return direction.port_label
    try:
        return HandleDirection.from_label(direction).port_label
    except ValueError:
        return str(direction) or HandleDirection.SOURCE.port_label


def _coerce_kind(kind: Union[IdKind, str]) -> Optional[IdKind]:
    try:
        return IdKind(kind)
    except ValueError:
        return None


def _split_handle_id(handle_id: str) -> Tuple[str, str]:
    """
    (node id, port label) of a generated handle id.

    Generated handle ids end in `-{label}-{token}-{random}`; anything
    shorter is treated as belonging to a node of the same name.
    """
    parts = handle_id.split("-")
    node_id = "-".join(parts[:-3])
    if node_id:
        return node_id, parts[-3]
    return handle_id or _FALLBACK_PREFIX, HandleDirection.SOURCE.port_label


def _handle_tail(handle_id: Optional[str]) -> str:
    """`-{last dash segment}` of a handle id, or empty when no handle."""
    if not handle_id:
        return ""
    return "-" + handle_id.split("-")[-1]


class WorkflowIdGenerator:
    """
    Mints node, handle and edge ids checked against an IdOracle.

    Usage:
        generator = WorkflowIdGenerator(store)
        node_id = generator.generate_node_id(NodeType.SMART_CHAT)
        in_id = generator.generate_handle_id(node_id, HandleDirection.TARGET)
    """

    def __init__(
        self,
        oracle: Optional[IdOracle] = None,
        counter: Optional[MonotonicCounter] = None,
        config: Optional[IdGenerationConfig] = None,
    ):
        self.oracle: IdOracle = oracle if oracle is not None else NullOracle()
        self._counter = counter
        self.config = config or get_config().id_generation

    @property
    def counter(self) -> MonotonicCounter:
        # Resolved lazily so reset_id_counter() affects existing generators
        return self._counter if self._counter is not None else get_id_counter()

    def with_oracle(self, oracle: IdOracle) -> "WorkflowIdGenerator":
        """A generator sharing this one's counter and config but asking `oracle`."""
        return WorkflowIdGenerator(oracle, counter=self._counter, config=self.config)

    def _candidate_suffix(self) -> str:
        return f"{_time_token(self.counter)}-{_random_suffix(self.config.random_suffix_length)}"

    def _fallback_suffix(self) -> str:
        return f"{_epoch_ms()}-{uuid.uuid4().hex}"

    def _retries(self, max_retries: Optional[int]) -> int:
        return self.config.max_retries if max_retries is None else max_retries

    # =========================================================================
    # GENERATION
    # =========================================================================

    def generate_node_id(self, node_type: NodeTypeLike, max_retries: Optional[int] = None) -> str:
        """
        Mint a node id of the form `{nodetype}-{token}-{random}`.

        Args:
            node_type: NodeType or raw type string; lowercased as the prefix
            max_retries: Oracle attempts before falling back

        Returns:
            An id the oracle reported free, or the fallback id
        """
        prefix = _type_prefix(node_type)

        for _ in range(self._retries(max_retries)):
            candidate = f"{prefix}-{self._candidate_suffix()}"
            if not self.oracle.is_node_id_taken(candidate):
                return candidate

        fallback = f"{prefix}-{self._fallback_suffix()}"
        logger.warning("Node id retries exhausted for prefix %r; using fallback %s", prefix, fallback)
        return fallback

    def generate_handle_id(
        self,
        node_id: str,
        direction: DirectionLike,
        max_retries: Optional[int] = None,
    ) -> str:
        """
        Mint a handle id `{node_id}-{in|out}-{token}-{random}`.

        Uniqueness is only checked within `node_id`'s handles. Directions
        other than source/target (or in/out) are embedded verbatim.
        """
        base = f"{node_id}-{_port_label(direction)}"

        for _ in range(self._retries(max_retries)):
            candidate = f"{base}-{self._candidate_suffix()}"
            if not self.oracle.is_handle_id_taken(node_id, candidate):
                return candidate

        fallback = f"{base}-{self._fallback_suffix()}"
        logger.warning("Handle id retries exhausted for node %s; using fallback %s", node_id, fallback)
        return fallback

    def generate_edge_id(
        self,
        source_id: str,
        target_id: str,
        source_handle: Optional[str] = None,
        target_handle: Optional[str] = None,
        max_retries: Optional[int] = None,
    ) -> str:
        """
        Mint an edge id.

        Only the last dash-delimited segment of each supplied handle is
        embedded, which keeps ids short while still separating parallel
        edges between the same two nodes.
        """
        base = f"edge-{source_id}-{target_id}{_handle_tail(source_handle)}{_handle_tail(target_handle)}"

        for _ in range(self._retries(max_retries)):
            candidate = f"{base}-{self._candidate_suffix()}"
            if not self.oracle.is_edge_id_taken(candidate):
                return candidate

        fallback = f"edge-{source_id}-{target_id}-{self._fallback_suffix()}"
        logger.warning("Edge id retries exhausted for %s -> %s; using fallback %s", source_id, target_id, fallback)
        return fallback

    def regenerate_unique_id(self, old_id: str, kind: Union[IdKind, str]) -> str:
        """
        Mint a fresh id of the same kind as `old_id` (used when copying).

        - node: the text before the first dash is reused as the type prefix
        - handle: the owning node id and port label are read back from the
          `{node_id}-{label}-{token}-{random}` layout and a handle id is
          minted within that node
        - edge: ids cannot be split back into source and target because
          node ids contain dashes themselves, so edges get a detached
          `edge-unknown-unknown-...` id; callers must wire source and
          target themselves

        Unknown kinds are treated as node ids.
        """
        resolved = _coerce_kind(kind)

        if resolved is IdKind.EDGE:
            return self.generate_edge_id(_DETACHED_ENDPOINT, _DETACHED_ENDPOINT)
        if resolved is IdKind.HANDLE:
            node_id, label = _split_handle_id(old_id)
            return self.generate_handle_id(node_id, label)

        if resolved is None:
            logger.debug("Unknown id kind %r; regenerating %s as a node id", kind, old_id)
        return self.generate_node_id(old_id.split("-")[0] or _FALLBACK_PREFIX)

    # =========================================================================
    # BATCH CHECKS
    # =========================================================================

    def validate_ids(self, ids: Iterable[str], kind: Union[IdKind, str]) -> IdCheckResult:
        """
        Report ids repeated within `ids` or already taken per the oracle.

        A repeated id is reported once per repetition; the first occurrence
        is only reported if the oracle calls it taken. Handle ids (which
        need an owning node) and unknown kinds are only checked for repeats.
        """
        resolved = _coerce_kind(kind)
        conflicts: List[str] = []
        seen = set()

        for id_ in ids:
            if id_ in seen:
                conflicts.append(id_)
                continue

            if resolved is IdKind.NODE and self.oracle.is_node_id_taken(id_):
                conflicts.append(id_)
            elif resolved is IdKind.EDGE and self.oracle.is_edge_id_taken(id_):
                conflicts.append(id_)

            seen.add(id_)

        return IdCheckResult(valid=not conflicts, conflicts=conflicts)


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def create_id_generator(oracle: Optional[IdOracle] = None) -> WorkflowIdGenerator:
    """Create a generator bound to `oracle`."""
    return WorkflowIdGenerator(oracle)


def _quick_suffix() -> str:
    length = get_config().id_generation.random_suffix_length
    return f"{_time_token(get_id_counter())}-{_random_suffix(length)}"


def quick_node_id(node_type: NodeTypeLike) -> str:
    """Node id without any oracle check."""
    return f"{_type_prefix(node_type)}-{_quick_suffix()}"


def quick_handle_id(node_id: str, direction: DirectionLike) -> str:
    """Handle id without any oracle check."""
    return f"{node_id}-{_port_label(direction)}-{_quick_suffix()}"


def quick_edge_id(source_id: str, target_id: str) -> str:
    """Edge id without any oracle check."""
    return f"edge-{source_id}-{target_id}-{_quick_suffix()}"
