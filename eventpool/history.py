import asyncio
import logging

import grpc

from core.exceptions import ConnectionClosed, QueryError
from eventpool import wire
from eventpool.connection import Connection
from eventpool.entities import ChainFilter, EventRecord


class HistoryQuery:
    """
    Paginated lookup of previously recorded events.

    ``skip`` and ``take`` are forwarded untouched; the event pool is
    responsible for rejecting or clamping them.

    Parameters
    ----------
    logger : logging.Logger
        Logger instance
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    async def get_events(
        self,
        connection: Connection,
        chain_filter: ChainFilter,
        tx_hash: str,
        skip: int,
        take: int
    ) -> list[EventRecord]:
        """
        Fetch one page of events.

        Parameters
        ----------
        connection : Connection
            Open connection
        chain_filter : ChainFilter
            Chain and contract to query
        tx_hash : str
            Restrict to one transaction, empty for all
        skip : int
            Records to skip
        take : int
            Records to return

        Returns
        -------
        list[EventRecord]
            Events in server order

        Raises
        ------
        ConnectionClosed
            If the connection was closed
        QueryError
            If the request cannot be encoded or the call fails
        """
        connection.ensure_open()

        try:
            request = wire.GetEventsRequest(
                chain_id=chain_filter.chain_id,
                contract_address=chain_filter.contract_address,
                tx_hash=tx_hash,
                skip=skip,
                take=take,
            )
        except (TypeError, ValueError) as e:
            raise QueryError(f"failed to encode events request: {e}", cause=e) from e

        call = wire.EventServiceStub(connection.channel).GetEvents(request)
        try:
            with connection.scope.bind(call):
                response = await call
        except grpc.RpcError as e:
            raise QueryError(f"failed to get events: {e.details()}", cause=e) from e
        except asyncio.CancelledError:
            if not connection.closed:
                raise
            raise ConnectionClosed(f"connection to {connection.target} is closed") from None

        self.logger.debug(
            f"Fetched {len(response.data)} events for chain {chain_filter.chain_id} "
            f"(skip={skip}, take={take})"
        )
        return [EventRecord.model_validate(item) for item in response.data]
