from enum import Enum

from pydantic import BaseModel, ConfigDict


class ChainFilter(BaseModel):
    """
    Subset of on-chain events a subscription or query cares about.

    Attributes
    ----------
    chain_id : int
        Chain identifier
    contract_address : str
        Contract address
    event_signature : str
        Event signature
    """
    chain_id: int
    contract_address: str
    event_signature: str

    model_config = ConfigDict(frozen=True, from_attributes=True)


class EventRecord(BaseModel):
    """
    Event delivered by the event pool.

    Attributes
    ----------
    block_number : int
        Block the event was emitted in
    tx_hash : str
        Transaction hash
    data : str
        Opaque event payload
    """
    block_number: int
    tx_hash: str
    data: str

    model_config = ConfigDict(frozen=True, from_attributes=True)


class ConnectionState(str, Enum):
    """Lifecycle of a connection manager."""
    UNRESOLVED = "unresolved"
    RESOLVING = "resolving"
    CONNECTED = "connected"
    CLOSED = "closed"


class SubscriptionOutcome(str, Enum):
    """Why a subscription's receive loop stopped."""
    END_OF_STREAM = "end_of_stream"
    CANCELLED = "cancelled"
    ERROR = "error"
