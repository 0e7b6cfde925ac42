from pydantic import BaseModel, ConfigDict, Field, field_validator

from eventpool.wire import INT32_MAX


class GetEventsRequest(BaseModel):
    """
    Request schema for a page of historical events.

    Attributes
    ----------
    chain : str | None
        Configured chain name, defaults to the chain served by this instance
    tx_hash : str
        Restrict results to one transaction, empty for all
    skip : int
        Records to skip
    take : int
        Records to return
    """
    chain: str | None = Field(default=None, description="Configured chain name")
    tx_hash: str = Field(default="", description="Transaction hash to filter by")
    skip: int = Field(default=0, ge=0, le=INT32_MAX, description="Records to skip")
    take: int = Field(default=100, gt=0, le=INT32_MAX, description="Records to return")

    @field_validator('tx_hash')
    @classmethod
    def validate_tx_hash(cls, v: str) -> str:
        if v and not v.startswith('0x'):
            raise ValueError('Invalid transaction hash format')
        return v.lower()

    model_config = ConfigDict(from_attributes=True)


class EventResponse(BaseModel):
    """
    Response schema for a single event.

    Attributes
    ----------
    block_number : int
        Block number
    tx_hash : str
        Transaction hash
    data : str
        Event payload
    """
    block_number: int
    tx_hash: str
    data: str

    model_config = ConfigDict(from_attributes=True)


class EventsResponse(BaseModel):
    """
    Response schema for a page of events.

    Attributes
    ----------
    chain : str
        Chain name
    chain_id : int
        Chain identifier
    contract_address : str
        Contract address
    skip : int
        Records skipped
    take : int
        Records requested
    events : list[EventResponse]
        Events in server order
    total_events : int
        Number of events in this page
    """
    chain: str
    chain_id: int
    contract_address: str
    skip: int
    take: int
    events: list[EventResponse]
    total_events: int

    model_config = ConfigDict(from_attributes=True)
