import asyncio
from typing import AsyncIterator

from core.environment.config import Settings
from eventpool.connection import Connection
from eventpool.entities import ChainFilter, EventRecord
from eventpool.history import HistoryQuery
from eventpool.schemas import EventResponse, EventsResponse
from eventpool.subscriber import EventSubscriber, Subscription

RELAY_QUEUE_SIZE = 64


class GetEventHistoryUseCase:
    """
    Use case for getting a page of historical events.

    Parameters
    ----------
    connection : Connection
        Open node connection
    history_query : HistoryQuery
        History query component
    settings : Settings
        Application settings
    """

    def __init__(self, connection: Connection, history_query: HistoryQuery, settings: Settings):
        self.connection = connection
        self.history_query = history_query
        self.settings = settings

    async def __call__(
        self,
        chain: str | None,
        tx_hash: str,
        skip: int,
        take: int
    ) -> EventsResponse:
        """
        Execute use case.

        Parameters
        ----------
        chain : str | None
            Configured chain name, defaults to the served chain
        tx_hash : str
            Transaction hash filter, empty for all
        skip : int
            Records to skip
        take : int
            Records to return

        Returns
        -------
        EventsResponse
            Events response
        """
        chain = chain or self.settings.chain
        chain_config = self.settings.get_chain_config(chain)
        chain_filter = ChainFilter.model_validate(chain_config)

        events = await self.history_query.get_events(
            connection=self.connection,
            chain_filter=chain_filter,
            tx_hash=tx_hash,
            skip=skip,
            take=take
        )

        return EventsResponse(
            chain=chain,
            chain_id=chain_filter.chain_id,
            contract_address=chain_filter.contract_address,
            skip=skip,
            take=take,
            events=[EventResponse.model_validate(event) for event in events],
            total_events=len(events)
        )


class EventRelay:
    """
    Bounded hand-off between a subscription and a single consumer.

    ``put`` is the subscription handler: it waits while the relay is full,
    which stalls the dispatcher and, through the subscription's own queue,
    the receive loop. Termination is queued as a sentinel from a task, so
    it never fails on a full relay.

    Parameters
    ----------
    maxsize : int
        Events buffered for the consumer
    """

    def __init__(self, maxsize: int = RELAY_QUEUE_SIZE):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._end: asyncio.Task | None = None
        self.subscription: Subscription | None = None

    async def put(self, event: EventRecord) -> None:
        await self._queue.put(event)

    def terminated(self, _subscription: Subscription) -> None:
        # the dispatcher has stopped, nothing is queued after the sentinel
        self._end = asyncio.get_running_loop().create_task(self._queue.put(None))

    async def events(self) -> AsyncIterator[EventResponse]:
        try:
            while True:
                event = await self._queue.get()
                if event is None:
                    break
                yield EventResponse.model_validate(event)
        finally:
            if self.subscription is not None:
                self.subscription.cancel()
            if self._end is not None:
                self._end.cancel()


class StreamEventsUseCase:
    """
    Use case for relaying a live subscription.

    Parameters
    ----------
    connection : Connection
        Open node connection
    subscriber : EventSubscriber
        Event subscriber component
    settings : Settings
        Application settings
    relay_size : int
        Events buffered for a slow consumer before the stream is held back
    """

    def __init__(
        self,
        connection: Connection,
        subscriber: EventSubscriber,
        settings: Settings,
        relay_size: int = RELAY_QUEUE_SIZE
    ):
        self.connection = connection
        self.subscriber = subscriber
        self.settings = settings
        self.relay_size = relay_size

    async def __call__(self, chain: str | None) -> AsyncIterator[EventResponse]:
        """
        Subscribe and return an iterator over the received events.

        The stream is opened before returning, so subscription failures are
        raised here rather than while iterating.

        Parameters
        ----------
        chain : str | None
            Configured chain name, defaults to the served chain

        Returns
        -------
        AsyncIterator[EventResponse]
            Events until the subscription terminates
        """
        chain_config = self.settings.get_chain_config(chain)
        relay = EventRelay(self.relay_size)

        relay.subscription = await self.subscriber.subscribe(
            self.connection,
            ChainFilter.model_validate(chain_config),
            relay.put,
            on_terminated=relay.terminated
        )
        return relay.events()
