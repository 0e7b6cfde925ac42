import asyncio
import inspect
import logging
from typing import Awaitable, Callable

import grpc

from core.exceptions import ConnectionClosed, SubscriptionError
from eventpool import wire
from eventpool.connection import Connection
from eventpool.entities import ChainFilter, EventRecord, SubscriptionOutcome

EventHandler = Callable[[EventRecord], Awaitable[None] | None]
TerminationCallback = Callable[["Subscription"], None]

DEFAULT_QUEUE_SIZE = 1024

_END = object()


class Subscription:
    """
    Live event stream for one filter on a connection.

    A receive task reads the stream into a bounded queue and a dispatch
    task hands records to the handler one at a time, in receipt order.

    Parameters
    ----------
    connection : Connection
        Connection the stream belongs to
    chain_filter : ChainFilter
        Filter the stream was opened with
    call : grpc.aio.UnaryStreamCall
        Open stream
    handler : EventHandler
        Called for every record, may be a coroutine function
    logger : logging.Logger
        Logger instance
    on_terminated : TerminationCallback | None
        Called once both tasks have stopped
    queue_size : int
        Records buffered between the receive and dispatch tasks
    """

    def __init__(
        self,
        connection: Connection,
        chain_filter: ChainFilter,
        call,
        handler: EventHandler,
        logger: logging.Logger,
        on_terminated: TerminationCallback | None = None,
        queue_size: int = DEFAULT_QUEUE_SIZE
    ):
        self.connection = connection
        self.chain_filter = chain_filter
        self.logger = logger
        self._call = call
        self._handler = handler
        self._on_terminated = on_terminated
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._done = asyncio.Event()
        self._cancelled = False
        self.outcome: SubscriptionOutcome | None = None
        self.error: BaseException | None = None
        self.delivered = 0
        self._receiver: asyncio.Task | None = None
        self._dispatcher: asyncio.Task | None = None

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def start(self) -> None:
        scope = self.connection.scope
        scope.track(self._call)
        self._receiver = scope.spawn(self._receive(), name=f"receive-{self.chain_filter.chain_id}")
        self._dispatcher = scope.spawn(self._dispatch(), name=f"dispatch-{self.chain_filter.chain_id}")
        # runs even if the task is cancelled before its first step
        self._dispatcher.add_done_callback(self._finish)

    def cancel(self) -> None:
        """Stop this subscription without touching the connection."""
        self._cancelled = True
        self._call.cancel()
        for task in (self._receiver, self._dispatcher):
            if task is not None:
                task.cancel()

    async def wait(self) -> SubscriptionOutcome:
        """
        Wait until the subscription terminates.

        Returns
        -------
        SubscriptionOutcome
            Why the stream stopped
        """
        await self._done.wait()
        return self.outcome

    def _stopped_locally(self) -> bool:
        return self._cancelled or self.connection.scope.cancelled

    def _record_outcome(self, outcome: SubscriptionOutcome, error: BaseException | None = None) -> None:
        if self.outcome is None:
            self.outcome = outcome
            self.error = error

    async def _receive(self) -> None:
        try:
            async for message in self._call:
                await self._queue.put(EventRecord.model_validate(message))
        except asyncio.CancelledError:
            self._record_outcome(SubscriptionOutcome.CANCELLED)
            self._dispatcher.cancel()
            raise
        except grpc.RpcError as e:
            if e.code() == grpc.StatusCode.CANCELLED and self._stopped_locally():
                self._record_outcome(SubscriptionOutcome.CANCELLED)
            else:
                self._record_outcome(SubscriptionOutcome.ERROR, e)
        except Exception as e:
            self._record_outcome(SubscriptionOutcome.ERROR, e)
        else:
            self._record_outcome(SubscriptionOutcome.END_OF_STREAM)
        finally:
            self.connection.scope.untrack(self._call)

        if self.outcome is SubscriptionOutcome.CANCELLED:
            self._dispatcher.cancel()
        else:
            await self._queue.put(_END)

    async def _dispatch(self) -> None:
        try:
            while True:
                record = await self._queue.get()
                if record is _END or self._stopped_locally():
                    break
                await self._deliver(record)
        except asyncio.CancelledError:
            self._record_outcome(SubscriptionOutcome.CANCELLED)
            raise

    async def _deliver(self, record: EventRecord) -> None:
        try:
            result = self._handler(record)
            if inspect.isawaitable(result):
                await result
        except Exception:
            self.logger.exception(f"Event handler failed for tx {record.tx_hash}")
        self.delivered += 1

    def _finish(self, _task: asyncio.Task) -> None:
        if self.outcome is None:
            self._record_outcome(SubscriptionOutcome.CANCELLED)
        self.connection.scope.untrack(self._call)
        self._done.set()

        if self.outcome is SubscriptionOutcome.ERROR:
            self.logger.warning(f"Stream ended: {self.error}")
        else:
            self.logger.info(f"Stream ended: {self.outcome.value}")

        if self._on_terminated is not None:
            try:
                self._on_terminated(self)
            except Exception:
                self.logger.exception("Subscription termination callback failed")


class EventSubscriber:
    """
    Opens event streams on a connection.

    Parameters
    ----------
    logger : logging.Logger
        Logger instance
    queue_size : int
        Default buffer between receiving and delivering records
    """

    def __init__(self, logger: logging.Logger, queue_size: int = DEFAULT_QUEUE_SIZE):
        self.logger = logger
        self.queue_size = queue_size

    async def subscribe(
        self,
        connection: Connection,
        chain_filter: ChainFilter,
        handler: EventHandler,
        *,
        on_terminated: TerminationCallback | None = None,
        queue_size: int | None = None
    ) -> Subscription:
        """
        Open a stream and start delivering events in the background.

        Returns once the stream is established, not when it ends.

        Parameters
        ----------
        connection : Connection
            Open connection
        chain_filter : ChainFilter
            Events to subscribe to
        handler : EventHandler
            Called for every record in receipt order, never concurrently
        on_terminated : TerminationCallback | None
            Called once the subscription stops
        queue_size : int | None
            Overrides the default buffer size

        Returns
        -------
        Subscription
            Running subscription

        Raises
        ------
        ConnectionClosed
            If the connection was closed
        SubscriptionError
            If the request cannot be encoded or the stream cannot be opened
        """
        connection.ensure_open()

        try:
            request = wire.StreamEventsRequest(
                chain_id=chain_filter.chain_id,
                contract_address=chain_filter.contract_address,
                event_signature=chain_filter.event_signature,
            )
        except (TypeError, ValueError) as e:
            raise SubscriptionError(f"failed to encode subscription request: {e}", cause=e) from e

        call = wire.EventServiceStub(connection.channel).StreamEvents(request)
        try:
            with connection.scope.bind(call):
                await call.wait_for_connection()
        except grpc.RpcError as e:
            call.cancel()
            raise SubscriptionError(f"failed to subscribe to events: {e.details()}", cause=e) from e
        except asyncio.CancelledError:
            if not connection.closed:
                raise
            raise ConnectionClosed(f"connection to {connection.target} is closed") from None

        subscription = Subscription(
            connection=connection,
            chain_filter=chain_filter,
            call=call,
            handler=handler,
            logger=self.logger,
            on_terminated=on_terminated,
            queue_size=queue_size or self.queue_size
        )
        subscription.start()

        self.logger.info(
            f"Started streaming events for chain: {chain_filter.chain_id}, "
            f"contract: {chain_filter.contract_address}, event: {chain_filter.event_signature}"
        )
        return subscription
