from typing import Annotated

from dishka import FromComponent
from dishka.integrations.fastapi import inject
from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from eventpool.schemas import EventsResponse, GetEventsRequest
from eventpool.usecases import GetEventHistoryUseCase, StreamEventsUseCase

router = APIRouter(
    prefix="/api/events",
    tags=["Events"]
)


@router.post("/history", response_model=EventsResponse)
@inject
async def get_event_history(
    request: GetEventsRequest,
    use_case: Annotated[
        GetEventHistoryUseCase, FromComponent("eventpool")
    ]
) -> EventsResponse:
    """
    Get a page of historical events.

    Parameters
    ----------
    request : GetEventsRequest
        Request with chain, transaction hash and pagination
    use_case : GetEventHistoryUseCase
        Use case for getting historical events

    Returns
    -------
    EventsResponse
        Page of events
    """
    return await use_case(
        chain=request.chain,
        tx_hash=request.tx_hash,
        skip=request.skip,
        take=request.take
    )


@router.get("/stream")
@inject
async def stream_events(
    use_case: Annotated[
        StreamEventsUseCase, FromComponent("eventpool")
    ],
    chain: str | None = None
) -> StreamingResponse:
    """
    Stream live events as newline-delimited JSON.

    Parameters
    ----------
    use_case : StreamEventsUseCase
        Use case relaying a subscription
    chain : str | None
        Configured chain name, defaults to the served chain

    Returns
    -------
    StreamingResponse
        One JSON document per event
    """
    events = await use_case(chain)

    async def body():
        try:
            async for event in events:
                yield event.model_dump_json() + "\n"
        finally:
            await events.aclose()

    return StreamingResponse(body(), media_type="application/x-ndjson")
