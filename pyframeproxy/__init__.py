"""
pyframeproxy - Drive one stateful resource from several isolated requesters.

The resource lives in a single owner context and cannot be handed across
the context boundary. Requesters call its operations through generated
stubs; an owner-side CommandProxy per requester applies the calls, returns
non-transferable results as opaque handles, and buffers each requester's
calls into frame-aligned windows that the FrameCoordinator flushes one
requester at a time.

Key Features:
    - Call stubs generated from the owner's operation list
    - Handle references for results that cannot cross the channel
    - Frame buffering with sticky mode/binding replay per requester
    - In-process channels plus a length-prefixed JSON socket transport

Basic Usage:
    >>> import asyncio
    >>> import pyframeproxy
    >>> async def main(resource):
    ...     host = pyframeproxy.SharedResourceHost(resource)
    ...     owner_end, requester_end = pyframeproxy.create_channel_pair("r1")
    ...     client = pyframeproxy.RequesterClient("r1", requester_end, MyRequester())
    ...     client_task = asyncio.ensure_future(client.run())
    ...     await host.attach("r1", owner_end)
    ...     await host.run(max_frames=60)
    ...     await host.close()
"""

from ._internal.command_proxy import CommandProxy
from ._internal.coordinator import FrameCoordinator, FrameReport
from ._internal.operation_table import OperationTable
from ._internal.remote_handle import HandleRegistry, RemoteObjectHandle
from ._internal.requester import OperationNamespace, OperationStub, RequesterClient
from ._internal.rpc_transports import (
    JSONSocketTransport,
    LocalChannel,
    TransportChannel,
    create_channel_pair,
)
from .config import (
    FrameCoordinatorConfig,
    HostConfig,
    ProxyPolicyConfig,
    load_manifest,
)
from .errors import (
    DanglingReferenceError,
    FrameProxyError,
    PeerDisconnectedError,
    PeerUnresponsiveError,
    ProtocolError,
    RemoteOperationError,
)
from .host import SharedResourceHost
from .shared import RequesterBase

__version__ = "0.1.0"

__all__ = [
    "CommandProxy",
    "DanglingReferenceError",
    "FrameCoordinator",
    "FrameCoordinatorConfig",
    "FrameProxyError",
    "FrameReport",
    "HandleRegistry",
    "HostConfig",
    "JSONSocketTransport",
    "LocalChannel",
    "OperationNamespace",
    "OperationStub",
    "OperationTable",
    "PeerDisconnectedError",
    "PeerUnresponsiveError",
    "ProtocolError",
    "ProxyPolicyConfig",
    "RemoteObjectHandle",
    "RemoteOperationError",
    "RequesterBase",
    "RequesterClient",
    "SharedResourceHost",
    "TransportChannel",
    "create_channel_pair",
    "load_manifest",
]
