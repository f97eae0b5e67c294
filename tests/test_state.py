import copy
import pytest
from trace_reactor.state import State, StatePathError, extract_tag, parse_path

PAYLOAD = {
    "tag": "transfer",
    "lastTx": {"tag": "delegate", "amount": 5000},
    "validators": [{"name": "validator-0"}, {"name": "validator-1"}],
    "a.b": 1,
    "a/b": {"~c": 3},
}

# ---------------------------------------------------------------------------
# Path Parsing Tests
# ---------------------------------------------------------------------------

def test_parse_dotted_path():
    assert parse_path("lastTx.tag") == ["lastTx", "tag"]
    assert parse_path("validators.0.name") == ["validators", "0", "name"]

def test_parse_dotted_path_with_escaped_dot():
    assert parse_path("a\\.b") == ["a.b"]
    assert parse_path("x.a\\.b.y") == ["x", "a.b", "y"]

def test_parse_json_pointer():
    assert parse_path("/lastTx/tag") == ["lastTx", "tag"]
    assert parse_path("/a~1b/~0c") == ["a/b", "~c"]

def test_parse_empty_path_addresses_whole_state():
    assert parse_path("") == []
    assert State(PAYLOAD).get("") == PAYLOAD

# ---------------------------------------------------------------------------
# Query Tests
# ---------------------------------------------------------------------------

def test_get_resolves_nested_fields_and_list_indices():
    state = State(PAYLOAD)
    assert state.get("tag") == "transfer"
    assert state.get("lastTx.amount") == 5000
    assert state.get("validators.1.name") == "validator-1"
    assert state.get("/validators/0/name") == "validator-0"
    assert state.get("a\\.b") == 1
    assert state.get("/a~1b/~0c") == 3

def test_get_returns_default_for_unresolved_paths():
    state = State(PAYLOAD)
    assert state.get("missing") is None
    assert state.get("missing", 0) == 0
    assert state.get("validators.2") is None
    assert state.get("validators.-1") is None
    assert state.get("tag.inner") is None

def test_list_indices_must_be_ascii_digits():
    state = State({"xs": [1, 2, 3]})
    assert state.get("xs.\N{SUPERSCRIPT TWO}", "MISSING") == "MISSING"
    assert "xs.\N{ARABIC-INDIC DIGIT ONE}" not in state
    assert state.get("xs.1") == 2

def test_getitem_raises_state_path_error():
    state = State(PAYLOAD)
    assert state["lastTx.tag"] == "delegate"
    with pytest.raises(StatePathError):
        state["lastTx.missing"]
    with pytest.raises(KeyError):
        state["nowhere"]

def test_contains():
    state = State(PAYLOAD)
    assert "lastTx.tag" in state
    assert "lastTx.nope" not in state
    assert 3 not in state

def test_non_mapping_payload_is_rejected():
    with pytest.raises(TypeError):
        State([1, 2, 3])

# ---------------------------------------------------------------------------
# Immutability Tests
# ---------------------------------------------------------------------------

def test_state_cannot_be_reassigned():
    state = State(PAYLOAD)
    with pytest.raises(AttributeError):
        state._data = {}

def test_returned_values_are_copies():
    state = State(PAYLOAD)
    validators = state.get("validators")
    validators.append({"name": "intruder"})
    state.to_dict()["tag"] = "mutated"

    assert len(state["validators"]) == 2
    assert state["tag"] == "transfer"

def test_construction_copies_the_payload():
    source = {"balances": {"A": 100}}
    state = State(source)
    source["balances"]["A"] = 0
    assert state["balances.A"] == 100

def test_equality_and_copy():
    state = State(PAYLOAD)
    assert state == State(copy.deepcopy(PAYLOAD))
    assert state != State({"tag": "other"})
    assert copy.deepcopy(state) is state
    assert "transfer" in repr(state)

# ---------------------------------------------------------------------------
# Tag Extraction Tests
# ---------------------------------------------------------------------------

def test_extract_tag():
    state = State(PAYLOAD)
    assert extract_tag(state, "tag") == "transfer"
    assert extract_tag(state, "lastTx.tag") == "delegate"

def test_extract_tag_renders_scalars():
    assert extract_tag(State({"tag": 7}), "tag") == "7"
    assert extract_tag(State({"tag": True}), "tag") == "True"

def test_extract_tag_missing_or_container():
    state = State(PAYLOAD)
    assert extract_tag(state, "nope") is None
    assert extract_tag(state, "lastTx") is None
    assert extract_tag(state, "validators") is None
    assert extract_tag(State({"tag": None}), "tag") is None
