import asyncio
import logging
from contextlib import contextmanager
from typing import Coroutine, Iterator

import grpc

from core.environment.config import Settings
from core.exceptions import (
    ConnectionClosed,
    DialError,
    GatewayRejected,
    GatewayUnreachable,
    InvalidStateException,
)
from eventpool.address import normalize_address
from eventpool.entities import ConnectionState
from eventpool.gateway import ChannelFactory, GatewayResolver


class LifetimeScope:
    """
    Cancellable lifetime shared by every call issued through a connection.

    Cancelling the scope cancels the tracked gRPC calls and tasks.
    """

    def __init__(self):
        self._cancelled = False
        self._calls: set = set()
        self._tasks: set[asyncio.Task] = set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def track(self, call) -> None:
        if self._cancelled:
            call.cancel()
            return
        self._calls.add(call)

    def untrack(self, call) -> None:
        self._calls.discard(call)

    @contextmanager
    def bind(self, call) -> Iterator:
        self.track(call)
        try:
            yield call
        finally:
            self.untrack(call)

    def spawn(self, coro: Coroutine, name: str | None = None) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        if self._cancelled:
            task.cancel()
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        for call in list(self._calls):
            call.cancel()
        for task in list(self._tasks):
            task.cancel()

    async def drain(self) -> None:
        """Wait for tracked tasks other than the current one to finish."""
        current = asyncio.current_task()
        pending = [task for task in self._tasks if task is not current]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)


class Connection:
    """
    Channel to one resolved node plus its lifetime scope.

    Parameters
    ----------
    target : str
        Dialed ``host:port``
    channel : grpc.aio.Channel
        Channel owned by this connection
    logger : logging.Logger
        Logger instance
    """

    def __init__(self, target: str, channel: grpc.aio.Channel, logger: logging.Logger):
        self.target = target
        self.channel = channel
        self.scope = LifetimeScope()
        self.logger = logger
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def ensure_open(self) -> None:
        """
        Fail fast when the connection was closed.

        Raises
        ------
        ConnectionClosed
            If ``close`` has been called
        """
        if self._closed:
            raise ConnectionClosed(f"connection to {self.target} is closed")

    async def close(self) -> None:
        """
        Cancel the lifetime scope and release the channel.

        Calling it again is a no-op.
        """
        if self._closed:
            return
        self._closed = True
        self.scope.cancel()
        await self.scope.drain()
        await self.channel.close()
        self.logger.info(f"Connection to {self.target} closed")

    async def __aenter__(self) -> "Connection":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


class ConnectionManager:
    """
    Resolves a node and dials it, gateway first with a direct fallback.

    A manager performs a single resolution:
    ``UNRESOLVED -> RESOLVING -> CONNECTED``, ``CLOSED`` being terminal.

    Parameters
    ----------
    resolver : GatewayResolver
        Gateway resolver
    logger : logging.Logger
        Logger instance
    channel_factory : ChannelFactory
        Creates the node channel for a ``host:port`` target
    dial_timeout : float
        Seconds to wait for the node channel to become ready, 0 skips the wait
    """

    def __init__(
        self,
        resolver: GatewayResolver,
        logger: logging.Logger,
        channel_factory: ChannelFactory = grpc.aio.insecure_channel,
        dial_timeout: float = 5.0
    ):
        self.resolver = resolver
        self.logger = logger
        self.channel_factory = channel_factory
        self.dial_timeout = dial_timeout
        self.state = ConnectionState.UNRESOLVED
        self.connection: Connection | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        logger: logging.Logger,
        channel_factory: ChannelFactory = grpc.aio.insecure_channel
    ) -> "ConnectionManager":
        resolver = GatewayResolver(
            logger=logger,
            channel_factory=channel_factory,
            timeout=settings.gateway.timeout
        )
        return cls(
            resolver=resolver,
            logger=logger,
            channel_factory=channel_factory,
            dial_timeout=settings.node.dial_timeout
        )

    async def establish(
        self,
        gateway_address: str,
        chain_id: str,
        use_gateway: bool,
        fallback_address: str
    ) -> Connection:
        """
        Resolve and dial a node.

        Parameters
        ----------
        gateway_address : str
            Gateway ``host:port``
        chain_id : str
            Chain identifier sent to the gateway
        use_gateway : bool
            Query the gateway before using the fallback
        fallback_address : str
            Node dialed when the gateway is disabled or fails

        Returns
        -------
        Connection
            Open connection

        Raises
        ------
        DialError
            If the chosen node cannot be dialed
        InvalidStateException
            If this manager already resolved once
        """
        if self.state is not ConnectionState.UNRESOLVED:
            raise InvalidStateException(f"cannot establish a connection in state {self.state.value}")
        self.state = ConnectionState.RESOLVING

        try:
            node_address = await self._resolve(gateway_address, chain_id, use_gateway, fallback_address)
            channel = await self._dial(node_address)
        except BaseException:
            # cancellation and unexpected errors end the attempt as well
            self.state = ConnectionState.CLOSED
            raise

        self.connection = Connection(node_address, channel, self.logger)
        self.state = ConnectionState.CONNECTED
        self.logger.info(f"Connected to node at {node_address}")
        return self.connection

    async def connect(self, settings: Settings, chain_name: str | None = None) -> Connection:
        """
        Establish a connection using the configured gateway and fallback.

        Parameters
        ----------
        settings : Settings
            Application settings
        chain_name : str | None
            Configured chain to resolve, defaults to ``settings.chain``

        Returns
        -------
        Connection
            Open connection
        """
        chain = settings.get_chain_config(chain_name)
        return await self.establish(
            gateway_address=settings.get_gateway_addr(),
            chain_id=chain.get_gateway_chain_id(),
            use_gateway=settings.gateway.enabled,
            fallback_address=settings.node.fallback_address
        )

    async def close(self) -> None:
        if self.connection is not None:
            await self.connection.close()
        self.state = ConnectionState.CLOSED

    async def _resolve(
        self,
        gateway_address: str,
        chain_id: str,
        use_gateway: bool,
        fallback_address: str
    ) -> str:
        if use_gateway:
            try:
                return await self.resolver.resolve_node(gateway_address, chain_id)
            except (GatewayUnreachable, GatewayRejected) as e:
                self.logger.warning(f"{e.message}, falling back to direct connection")

        node_address = normalize_address(fallback_address)
        self.logger.info(f"Using direct connection to {node_address}")
        return node_address

    async def _dial(self, target: str) -> grpc.aio.Channel:
        if not target:
            raise DialError("failed to connect to node: empty node address")

        try:
            channel = self.channel_factory(target)
        except Exception as e:
            raise DialError(f"failed to connect to node {target}: {e}", cause=e) from e

        if self.dial_timeout > 0:
            try:
                await asyncio.wait_for(channel.channel_ready(), timeout=self.dial_timeout)
            except (asyncio.TimeoutError, grpc.RpcError) as e:
                await channel.close()
                raise DialError(f"failed to connect to node {target}: not ready", cause=e) from e

        return channel


class ConnectionSupervisor:
    """
    Long-lived owner of the node connection of a service.

    A ``ConnectionManager`` resolves once, so a failed attempt leaves it
    ``CLOSED``. The supervisor replaces a closed manager with a fresh one
    built from the settings, so the next caller retries the resolution.

    Parameters
    ----------
    settings : Settings
        Application settings
    logger : logging.Logger
        Logger instance
    channel_factory : ChannelFactory
        Creates gateway and node channels
    """

    def __init__(
        self,
        settings: Settings,
        logger: logging.Logger,
        channel_factory: ChannelFactory = grpc.aio.insecure_channel
    ):
        self.settings = settings
        self.logger = logger
        self.channel_factory = channel_factory
        self.manager = self._new_manager()
        self.attempts = 0
        self._lock = asyncio.Lock()

    @property
    def state(self) -> ConnectionState:
        return self.manager.state

    @property
    def connection(self) -> Connection | None:
        return self.manager.connection

    def _new_manager(self) -> ConnectionManager:
        return ConnectionManager.from_settings(self.settings, self.logger, self.channel_factory)

    async def connect(self) -> Connection:
        """
        Return the open connection, establishing it when needed.

        Returns
        -------
        Connection
            Open connection to the served chain's node

        Raises
        ------
        DialError
            If this attempt cannot dial a node, later calls try again
        """
        async with self._lock:
            connection = self.manager.connection
            if self.manager.state is ConnectionState.CONNECTED and not connection.closed:
                return connection

            if self.manager.state is not ConnectionState.UNRESOLVED:
                self.logger.info("Previous connection attempt ended, resolving the node again")
                self.manager = self._new_manager()

            self.attempts += 1
            return await self.manager.connect(self.settings)

    async def close(self) -> None:
        async with self._lock:
            await self.manager.close()
