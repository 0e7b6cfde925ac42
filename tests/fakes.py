import asyncio
import os

import grpc

from eventpool import wire

FIXTURE_CONFIG = os.path.join(os.path.dirname(__file__), "fixtures", "config.yaml")

NODE = "node.test:9090"
GATEWAY = "gateway.test:50051"


def rpc_error(code: grpc.StatusCode = grpc.StatusCode.UNAVAILABLE, details: str = "unavailable"):
    """Build the error grpc.aio raises for a failed call."""
    return grpc.aio.AioRpcError(code, grpc.aio.Metadata(), grpc.aio.Metadata(), details=details)


def event(block_number: int, tx_hash: str, data: str = ""):
    return wire.Event(block_number=block_number, tx_hash=tx_hash, data=data)


class FakeUnaryCall:
    """Awaitable stand-in for grpc.aio.UnaryUnaryCall."""

    def __init__(self, outcome=None, block: bool = False):
        self._outcome = outcome
        self._block = block
        self._wake = asyncio.Event()
        self.cancelled = False

    def cancel(self) -> bool:
        self.cancelled = True
        self._wake.set()
        return True

    def __await__(self):
        return self._result().__await__()

    async def _result(self):
        if self._block:
            await self._wake.wait()
        if self.cancelled:
            raise asyncio.CancelledError()
        if isinstance(self._outcome, BaseException):
            raise self._outcome
        return self._outcome


class _End:
    def __init__(self, error=None):
        self.error = error


_CANCEL = object()


class FakeStreamCall:
    """
    Stand-in for grpc.aio.UnaryStreamCall.

    Yields the given messages and then ends, raises ``error`` or, with
    ``hold_open``, waits for ``push``/``finish``/``cancel``.
    """

    def __init__(self, messages=(), error=None, open_error=None, hold_open: bool = False):
        self._items: asyncio.Queue = asyncio.Queue()
        for message in messages:
            self._items.put_nowait(message)
        if not hold_open:
            self._items.put_nowait(_End(error))
        self.open_error = open_error
        self.cancelled = False
        self.reads = 0

    async def wait_for_connection(self) -> None:
        if self.open_error is not None:
            raise self.open_error

    def push(self, message) -> None:
        self._items.put_nowait(message)

    def finish(self, error=None) -> None:
        self._items.put_nowait(_End(error))

    def cancel(self) -> bool:
        if self.cancelled:
            return False
        self.cancelled = True
        self._items.put_nowait(_CANCEL)
        return True

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        while True:
            if self.cancelled:
                raise asyncio.CancelledError()
            item = await self._items.get()
            if item is _CANCEL:
                raise asyncio.CancelledError()
            if isinstance(item, _End):
                if item.error is not None:
                    raise item.error
                return
            self.reads += 1
            yield item


class FakeChannel:
    """Stand-in for grpc.aio.Channel routed through a FakeNetwork."""

    def __init__(self, target: str, network: "FakeNetwork"):
        self.target = target
        self.network = network
        self.closed = False
        self.requests = []

    def _handler(self, path: str):
        return self.network.handlers.get((self.target, path))

    def unary_unary(self, path, request_serializer=None, response_deserializer=None, **kwargs):
        def invoke(request, timeout=None):
            request = type(request).FromString(request_serializer(request))
            self.requests.append((path, request, timeout))
            handler = self._handler(path)
            if handler is None:
                return FakeUnaryCall(rpc_error())
            outcome = handler(request)
            if isinstance(outcome, (FakeUnaryCall, BaseException)):
                return outcome if isinstance(outcome, FakeUnaryCall) else FakeUnaryCall(outcome)
            return FakeUnaryCall(response_deserializer(outcome.SerializeToString()))
        return invoke

    def unary_stream(self, path, request_serializer=None, response_deserializer=None, **kwargs):
        def invoke(request, timeout=None):
            request = type(request).FromString(request_serializer(request))
            self.requests.append((path, request, timeout))
            handler = self._handler(path)
            if handler is None:
                return FakeStreamCall(open_error=rpc_error())
            return handler(request)
        return invoke

    async def channel_ready(self) -> None:
        if self.target in self.network.unreachable:
            await asyncio.Event().wait()

    async def close(self, grace=None) -> None:
        self.closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


class FakeNetwork:
    """Channel factory serving canned responses per (target, method)."""

    def __init__(self):
        self.handlers = {}
        self.channels: list[FakeChannel] = []
        self.unreachable: set[str] = set()
        self.refused: dict[str, int] = {}

    def route(self, target: str, path: str, handler) -> None:
        self.handlers[(target, path)] = handler

    def refuse(self, target: str, times: int = 1) -> None:
        """Make the next ``times`` channels to ``target`` fail to open."""
        self.refused[target] = times

    def gateway_returns(self, node_address: str = "", error_message: str = "", target: str = GATEWAY) -> None:
        self.route(
            target,
            wire.GET_NODE_FOR_CHAIN,
            lambda request: wire.GetNodeResponse(node_address=node_address, error_message=error_message)
        )

    def channels_to(self, target: str) -> list[FakeChannel]:
        return [channel for channel in self.channels if channel.target == target]

    def __call__(self, target: str) -> FakeChannel:
        if self.refused.get(target):
            self.refused[target] -= 1
            raise OSError(f"connection refused: {target}")
        channel = FakeChannel(target, self)
        self.channels.append(channel)
        return channel
