from pydantic import BaseModel, Field, ConfigDict, AliasChoices
from typing import Optional, Dict, Any


class Room(BaseModel):
    """Room as listed by the backend. Read-only from the portal's side."""
    model_config = ConfigDict(populate_by_name=True)

    room_id: str = Field(..., validation_alias=AliasChoices("room_id", "roomId", "_id", "id"))
    room_number: str = Field(..., validation_alias=AliasChoices("room_number", "roomNumber"))
    monthly_rent: int = Field(..., ge=0, validation_alias=AliasChoices("monthly_rent", "monthlyRent"))
    is_available: bool = Field(True, validation_alias=AliasChoices("is_available", "isAvailable"))
    description: Optional[str] = None
    building: Optional[str] = None
    floor: Optional[str] = None
    tenant: Optional[Dict[str, Any]] = None
