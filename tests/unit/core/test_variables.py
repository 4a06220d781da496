"""
Unit tests for core/variables.py - Variable Availability

Tests which variables a node may reference:
- Globals are always available
- Upstream node types contribute their variables
- Downstream and self never contribute
- Cycles, diamonds and dangling ids terminate cleanly
"""
import pytest

from core.ontology import NodeType
from core.schemas import Edge, Node
from core.variables import (
    GLOBAL_VARIABLES,
    NODE_VARIABLES,
    find_upstream_node_ids,
    format_variable_token,
    get_all_variables,
    get_available_variables,
    variable_names,
    variables_for_node_type,
)


GLOBAL_NAMES = [
    "ticketDescription",
    "ticketModule",
    "ticketCategory",
    "ticketTitle",
    "lastCustomerMessage",
    "historyMessages",
    "userQuery",
]


def _n(node_id, node_type):
    return Node(id=node_id, type=node_type)


def _e(edge_id, source, target):
    return Edge(id=edge_id, source=source, target=target)


# =============================================================================
# CATALOG
# =============================================================================

def test_global_catalog_order():
    assert variable_names(GLOBAL_VARIABLES) == GLOBAL_NAMES
    assert all(v.is_global for v in GLOBAL_VARIABLES)
    assert GLOBAL_VARIABLES[0].description == "rf.var.desc.ticketDescription"


def test_every_node_type_has_an_entry():
    assert set(NODE_VARIABLES) == set(NodeType)


def test_node_type_catalog():
    assert variable_names(variables_for_node_type(NodeType.EMOTION_DETECTOR)) == [
        "sentiment", "stylePrompt", "handoffReason", "handoffPriority", "handoffRequired",
    ]
    assert variable_names(variables_for_node_type("escalationOffer")) == [
        "proposeEscalation", "escalationReason", "handoffPriority",
    ]
    assert variable_names(variables_for_node_type("smartChat")) == [
        "retrievedContextString", "retrievedContextCount", "hasRetrievedContext",
    ]
    for node_type in ("start", "end", "handoff", "variableSetter", "rag"):
        assert variables_for_node_type(node_type) == ()


def test_unknown_node_type_exposes_nothing():
    assert variables_for_node_type("notARealType") == ()


def test_shared_name_keeps_producer():
    """handoffPriority exists on two producers and stays distinct per producer."""
    detector = [v for v in variables_for_node_type("emotionDetector") if v.name == "handoffPriority"][0]
    offer = [v for v in variables_for_node_type("escalationOffer") if v.name == "handoffPriority"][0]

    assert detector != offer
    assert detector.node_type == "emotionDetector"
    assert offer.node_type == "escalationOffer"


def test_tokens():
    assert format_variable_token("sentiment") == "{{ sentiment }}"
    assert GLOBAL_VARIABLES[-1].token == "{{ userQuery }}"


def test_all_variables_lists_everything():
    all_vars = get_all_variables()

    assert variable_names(all_vars[:7]) == GLOBAL_NAMES
    assert len(all_vars) == 7 + 5 + 3 + 3


# =============================================================================
# RESOLUTION
# =============================================================================

def test_chain_scenario(chat_workflow):
    """
    Validate availability along start -> detect -> chat -> end.

    Verifies:
    - chat sees detect's variables but not its own
    - start's (empty) contribution adds nothing
    - end sees both detect's and chat's variables
    """
    nodes, edges = chat_workflow

    at_chat = variable_names(get_available_variables("chat", nodes, edges))
    assert at_chat[:7] == GLOBAL_NAMES
    assert "sentiment" in at_chat
    assert "handoffRequired" in at_chat
    assert "retrievedContextString" not in at_chat

    at_end = variable_names(get_available_variables("end", nodes, edges))
    assert "retrievedContextString" in at_end
    assert "sentiment" in at_end

    at_detect = variable_names(get_available_variables("detect", nodes, edges))
    assert at_detect == GLOBAL_NAMES


def test_no_target_gives_globals_only():
    """A five-node chain without a focused node offers exactly the globals."""
    nodes = [
        _n("s", "start"),
        _n("d", "emotionDetector"),
        _n("o", "escalationOffer"),
        _n("c", "smartChat"),
        _n("x", "end"),
    ]
    edges = [_e("e1", "s", "d"), _e("e2", "d", "o"), _e("e3", "o", "c"), _e("e4", "c", "x")]

    assert get_available_variables(None, nodes, edges) == list(GLOBAL_VARIABLES)
    assert get_available_variables("", nodes, edges) == list(GLOBAL_VARIABLES)


def test_unknown_target_gives_globals_only(chat_workflow):
    nodes, edges = chat_workflow

    assert get_available_variables("nowhere", nodes, edges) == list(GLOBAL_VARIABLES)


def test_downstream_nodes_do_not_contribute():
    nodes = [_n("chat", "smartChat"), _n("detect", "emotionDetector")]
    edges = [_e("e1", "chat", "detect")]

    names = variable_names(get_available_variables("chat", nodes, edges))

    assert names == GLOBAL_NAMES


def test_cycle_terminates_and_excludes_self():
    """
    Validate A -> B -> A.

    Verifies:
    - Resolution terminates
    - Each node sees the other's variables
    - A node on a cycle still never sees its own variables
    """
    nodes = [_n("a", "emotionDetector"), _n("b", "smartChat")]
    edges = [_e("e1", "a", "b"), _e("e2", "b", "a")]

    at_a = variable_names(get_available_variables("a", nodes, edges))
    at_b = variable_names(get_available_variables("b", nodes, edges))

    assert "retrievedContextString" in at_a
    assert "sentiment" not in at_a
    assert "sentiment" in at_b
    assert "retrievedContextString" not in at_b


def test_self_loop_does_not_expose_own_variables():
    nodes = [_n("a", "smartChat")]
    edges = [_e("e1", "a", "a")]

    assert find_upstream_node_ids("a", nodes, edges) == []
    assert variable_names(get_available_variables("a", nodes, edges)) == GLOBAL_NAMES


def test_diamond_visits_shared_ancestor_once():
    """
    root -> left -> sink and root -> right -> sink.

    Two emotionDetector nodes contribute identical descriptors, which appear
    once.
    """
    nodes = [
        _n("root", "escalationOffer"),
        _n("left", "emotionDetector"),
        _n("right", "emotionDetector"),
        _n("sink", "end"),
    ]
    edges = [
        _e("e1", "root", "left"),
        _e("e2", "root", "right"),
        _e("e3", "left", "sink"),
        _e("e4", "right", "sink"),
    ]

    assert find_upstream_node_ids("sink", nodes, edges) == ["left", "right", "root"]

    names = variable_names(get_available_variables("sink", nodes, edges))
    assert names.count("sentiment") == 1
    assert names == GLOBAL_NAMES + [
        "sentiment", "stylePrompt", "handoffReason", "handoffPriority", "handoffRequired",
        "proposeEscalation", "escalationReason", "handoffPriority",
    ]


def test_adding_an_edge_never_removes_variables(chat_workflow):
    """Availability only grows as edges are added."""
    nodes, edges = chat_workflow
    nodes = nodes + [_n("offer", "escalationOffer")]

    before = set(get_available_variables("chat", nodes, edges))
    after = set(get_available_variables("chat", nodes, edges + [_e("e9", "offer", "chat")]))

    assert before <= after
    assert "proposeEscalation" in variable_names(after)


def test_dangling_source_is_traversed():
    """An edge from an undeclared id still links its own ancestors upstream."""
    nodes = [_n("detect", "emotionDetector"), _n("chat", "smartChat")]
    edges = [_e("e1", "detect", "ghost"), _e("e2", "ghost", "chat")]

    assert find_upstream_node_ids("chat", nodes, edges) == ["ghost", "detect"]
    assert "sentiment" in variable_names(get_available_variables("chat", nodes, edges))


@pytest.mark.parametrize("node_type", ["handoff", "variableSetter", "rag", "mystery"])
def test_types_without_outputs_contribute_nothing(node_type):
    nodes = [_n("up", node_type), _n("down", "end")]
    edges = [_e("e1", "up", "down")]

    assert variable_names(get_available_variables("down", nodes, edges)) == GLOBAL_NAMES


@pytest.mark.parametrize("upstream_member", ["start", "detect"])
def test_edge_into_upstream_member_reaches_target(chat_workflow, upstream_member):
    """
    Validate reachability through an existing ancestor.

    Wiring a new node into any node upstream of chat makes its variables
    available at chat, without touching chat's own edges.
    """
    nodes, edges = chat_workflow
    nodes = nodes + [_n("offer", "escalationOffer")]
    extended = edges + [_e("e9", "offer", upstream_member)]

    before = set(get_available_variables("chat", nodes, edges))
    after = get_available_variables("chat", nodes, extended)

    assert before <= set(after)
    assert "proposeEscalation" in variable_names(after)
    assert "offer" in find_upstream_node_ids("chat", nodes, extended)


def test_descriptor_token_matches_formatter():
    for variable in get_all_variables():
        assert variable.token == format_variable_token(variable.name)
