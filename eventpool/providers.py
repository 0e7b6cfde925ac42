import logging
from typing import Annotated, AsyncIterable

import grpc
from dishka import FromComponent, Provider, Scope, provide

from core.environment.config import Settings
from eventpool.connection import Connection, ConnectionSupervisor
from eventpool.gateway import ChannelFactory
from eventpool.history import HistoryQuery
from eventpool.subscriber import EventSubscriber
from eventpool.usecases import GetEventHistoryUseCase, StreamEventsUseCase


class EventPoolProvider(Provider):
    """
    Provider for event pool dependencies.

    Parameters
    ----------
    channel_factory : ChannelFactory
        Creates gRPC channels for gateway and node targets
    """

    component = "eventpool"

    def __init__(self, channel_factory: ChannelFactory = grpc.aio.insecure_channel):
        super().__init__()
        self.channel_factory = channel_factory

    @provide(scope=Scope.APP)
    async def get_connection_supervisor(
        self,
        settings: Annotated[Settings, FromComponent("environment")],
        logger: Annotated[logging.Logger, FromComponent("logger")]
    ) -> AsyncIterable[ConnectionSupervisor]:
        """
        Provide the owner of the node connection.

        Parameters
        ----------
        settings : Settings
            Application settings
        logger : logging.Logger
            Logger instance

        Yields
        ------
        ConnectionSupervisor
            Supervisor, its connection is closed when the container shuts down
        """
        supervisor = ConnectionSupervisor(settings, logger, self.channel_factory)
        try:
            yield supervisor
        finally:
            await supervisor.close()

    @provide(scope=Scope.REQUEST)
    async def get_connection(
        self,
        supervisor: Annotated[ConnectionSupervisor, FromComponent("eventpool")]
    ) -> Connection:
        """
        Provide the open node connection for the served chain.

        A failed attempt is not cached, the next request resolves again.

        Parameters
        ----------
        supervisor : ConnectionSupervisor
            Connection supervisor

        Returns
        -------
        Connection
            Open connection shared by all requests
        """
        return await supervisor.connect()

    @provide(scope=Scope.APP)
    def get_event_subscriber(
        self,
        logger: Annotated[logging.Logger, FromComponent("logger")]
    ) -> EventSubscriber:
        return EventSubscriber(logger=logger)

    @provide(scope=Scope.APP)
    def get_history_query(
        self,
        logger: Annotated[logging.Logger, FromComponent("logger")]
    ) -> HistoryQuery:
        return HistoryQuery(logger=logger)

    @provide(scope=Scope.REQUEST)
    def get_event_history_use_case(
        self,
        connection: Annotated[Connection, FromComponent("eventpool")],
        history_query: Annotated[HistoryQuery, FromComponent("eventpool")],
        settings: Annotated[Settings, FromComponent("environment")]
    ) -> GetEventHistoryUseCase:
        """
        Provide get event history use case.

        Parameters
        ----------
        connection : Connection
            Open node connection
        history_query : HistoryQuery
            History query component
        settings : Settings
            Application settings

        Returns
        -------
        GetEventHistoryUseCase
            Get event history use case
        """
        return GetEventHistoryUseCase(
            connection=connection,
            history_query=history_query,
            settings=settings
        )

    @provide(scope=Scope.REQUEST)
    def get_stream_events_use_case(
        self,
        connection: Annotated[Connection, FromComponent("eventpool")],
        subscriber: Annotated[EventSubscriber, FromComponent("eventpool")],
        settings: Annotated[Settings, FromComponent("environment")]
    ) -> StreamEventsUseCase:
        """
        Provide stream events use case.

        Parameters
        ----------
        connection : Connection
            Open node connection
        subscriber : EventSubscriber
            Event subscriber component
        settings : Settings
            Application settings

        Returns
        -------
        StreamEventsUseCase
            Stream events use case
        """
        return StreamEventsUseCase(
            connection=connection,
            subscriber=subscriber,
            settings=settings
        )
