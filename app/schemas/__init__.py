"""
app.schemas
~~~~~~~~~~~
Pydantic schemas and models for the API.
"""
from app.schemas.dice import (
    ErrorResponse,
    RollRecord,
    RollRequest,
    RollResponse,
    RoomListing,
    RoomSnapshotData,
    RoomSummary,
)
from app.schemas.events import (
    RollOccurred,
    RollOccurredData,
    RoomEvent,
    RoomSnapshot,
    UserCountChanged,
    decode_event,
    encode_event,
)

__all__ = [
    "ErrorResponse",
    "RollOccurred",
    "RollOccurredData",
    "RollRecord",
    "RollRequest",
    "RollResponse",
    "RoomEvent",
    "RoomListing",
    "RoomSnapshot",
    "RoomSnapshotData",
    "RoomSummary",
    "UserCountChanged",
    "decode_event",
    "encode_event",
]
