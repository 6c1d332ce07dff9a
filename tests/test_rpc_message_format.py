"""Tests for wire message preparation and inbound validation.

These tests verify that only primitives and handle references reach the
wire, and that malformed messages are classified as protocol errors.
"""

import pytest

from pyframeproxy import ProtocolError, RemoteObjectHandle
from pyframeproxy._internal.rpc_serialization import (
    is_handle_ref,
    is_primitive,
    make_handle_ref,
    prepare_for_wire,
    rehydrate,
    validate_inbound,
)
from tests.fixtures.fake_resource import Thing, frame_end, request


class TestPrepareForWire:
    """Tests for prepare_for_wire serialization."""

    def test_primitives_pass_through(self):
        """Primitive types pass through unchanged."""
        assert prepare_for_wire(42) == 42
        assert prepare_for_wire("hello") == "hello"
        assert prepare_for_wire(3.14) == 3.14
        assert prepare_for_wire(True) is True
        assert prepare_for_wire(None) is None
        assert prepare_for_wire(b"raw") == b"raw"

    def test_nested_containers_copied(self):
        data = {"outer": {"inner": [1, 2, {"deep": True}]}}
        result = prepare_for_wire(data)

        assert result == data
        assert result["outer"] is not data["outer"]

    def test_tuple_becomes_list(self):
        assert prepare_for_wire((1, 2, 3)) == [1, 2, 3]

    def test_remote_handle_becomes_reference(self):
        result = prepare_for_wire([RemoteObjectHandle(7, "Thing")])

        assert result == [{"is_handle": True, "handle_id": 7, "type_name": "Thing"}]

    def test_raw_object_rejected(self):
        """Owner objects must never be proposed for transport."""
        with pytest.raises(TypeError, match="Thing"):
            prepare_for_wire({"result": Thing("x")})


class TestHandleReferences:
    def test_make_and_detect(self):
        ref = make_handle_ref(3, Thing("x"))

        assert ref == {"is_handle": True, "handle_id": 3, "type_name": "Thing"}
        assert is_handle_ref(ref)
        assert not is_handle_ref({"handle_id": 3})
        assert not is_handle_ref(3)

    def test_rehydrate_nested(self):
        wire = {"items": [{"is_handle": True, "handle_id": 1, "type_name": "Thing"}, 2]}
        result = rehydrate(wire)

        assert isinstance(result["items"][0], RemoteObjectHandle)
        assert result["items"][0].handle_id == 1
        assert result["items"][1] == 2

    def test_is_primitive(self):
        assert is_primitive(0)
        assert is_primitive(None)
        assert not is_primitive([1])
        assert not is_primitive(Thing("x"))


class TestValidateInbound:
    """Classification and rejection of owner-bound messages."""

    def test_classifies_request(self):
        assert validate_inbound(request("r", 0, "add", 1, 2)) == "request"

    def test_classifies_frame_end(self):
        assert validate_inbound(frame_end("r")) == "frame_end"

    def test_classifies_batch(self):
        batch = {"requester_id": "r", "messages": [request("r", 0, "a"), request("r", 1, "b")]}
        assert validate_inbound(batch) == "batch"

    def test_classifies_release(self):
        assert validate_inbound({"requester_id": "r", "release": [1, 2]}) == "release"

    def test_wants_response_defaults_false(self):
        message = {"requester_id": "r", "request_id": 0, "name": "a", "args": []}
        assert validate_inbound(message) == "request"

    @pytest.mark.parametrize(
        "message",
        [
            None,
            [],
            {"request_id": 0, "name": "a", "args": []},
            {"requester_id": "r", "name": "a", "args": []},
            {"requester_id": "r", "request_id": "0", "name": "a", "args": []},
            {"requester_id": "r", "request_id": True, "name": "a", "args": []},
            {"requester_id": "r", "request_id": 0, "args": []},
            {"requester_id": "r", "request_id": 0, "name": "a", "args": "x"},
            {"requester_id": "r", "request_id": 0, "name": "a", "args": [], "wants_response": "yes"},
            {"requester_id": "r", "messages": "x"},
            {"requester_id": "r", "messages": [{"name": "a"}]},
            {"requester_id": "r", "release": ["1"]},
        ],
    )
    def test_malformed_rejected(self, message):
        with pytest.raises(ProtocolError):
            validate_inbound(message)
