"""Tests for message channels and blocking transports."""

import asyncio
import socket

import pytest

from pyframeproxy import (
    JSONSocketTransport,
    RemoteObjectHandle,
    TransportChannel,
    create_channel_pair,
)
from pyframeproxy._internal.rpc_transports import RPCTransport
from tests.fixtures.fake_resource import Thing


@pytest.mark.asyncio
class TestLocalChannel:
    """In-process channel pairs."""

    async def test_fifo_delivery_to_peer(self):
        owner, requester = create_channel_pair("t")

        requester.send({"n": 1})
        requester.send({"n": 2})

        assert await owner.recv() == {"n": 1}
        assert await owner.recv() == {"n": 2}

    async def test_payload_is_copied(self):
        owner, requester = create_channel_pair()
        payload = {"args": [1, 2]}

        requester.send(payload)
        payload["args"].append(3)

        assert await owner.recv() == {"args": [1, 2]}

    async def test_handles_converted_to_references(self):
        owner, requester = create_channel_pair()

        requester.send({"args": [RemoteObjectHandle(3, "Thing")]})

        assert await owner.recv() == {
            "args": [{"is_handle": True, "handle_id": 3, "type_name": "Thing"}]
        }

    async def test_raw_objects_rejected(self):
        owner, requester = create_channel_pair()

        with pytest.raises(TypeError):
            owner.send({"result": Thing("raw")})

    async def test_close_ends_both_streams(self):
        owner, requester = create_channel_pair()

        owner.close()

        assert await owner.recv() is None
        assert await requester.recv() is None
        assert requester.closed
        with pytest.raises(ConnectionError):
            requester.send({"n": 1})


class TestJSONSocketTransport:
    """Length-prefixed JSON over a socket pair."""

    def test_round_trip_with_bytes(self):
        left, right = socket.socketpair()
        sender, receiver = JSONSocketTransport(left), JSONSocketTransport(right)
        try:
            sender.send({"name": "upload", "args": [b"\x00\x01", 1.5, None, "s"]})

            assert receiver.recv() == {"name": "upload", "args": [b"\x00\x01", 1.5, None, "s"]}
        finally:
            sender.close()
            receiver.close()

    def test_non_transferable_rejected(self):
        left, right = socket.socketpair()
        sender = JSONSocketTransport(left)
        try:
            with pytest.raises(TypeError):
                sender.send({"result": Thing("raw")})
        finally:
            sender.close()
            right.close()

    def test_closed_peer_raises_connection_error(self):
        left, right = socket.socketpair()
        receiver = JSONSocketTransport(right)
        left.close()
        try:
            with pytest.raises(ConnectionError):
                receiver.recv()
        finally:
            receiver.close()

    def test_satisfies_transport_protocol(self):
        left, right = socket.socketpair()
        try:
            assert isinstance(JSONSocketTransport(left), RPCTransport)
        finally:
            left.close()
            right.close()


@pytest.mark.asyncio
class TestTransportChannel:
    """Async channel over a blocking transport."""

    async def test_messages_cross_socket(self):
        left, right = socket.socketpair()
        owner = TransportChannel(JSONSocketTransport(left))
        requester = TransportChannel(JSONSocketTransport(right))
        try:
            requester.send({"requester_id": "r", "args": [RemoteObjectHandle(1)]})
            received = await asyncio.wait_for(owner.recv(), 5)

            assert received == {
                "requester_id": "r",
                "args": [{"is_handle": True, "handle_id": 1, "type_name": "object"}],
            }
        finally:
            owner.close()
            requester.close()

    async def test_peer_close_ends_stream(self):
        left, right = socket.socketpair()
        owner = TransportChannel(JSONSocketTransport(left))
        owner.start()
        right.close()

        assert await asyncio.wait_for(owner.recv(), 5) is None
        owner.close()
