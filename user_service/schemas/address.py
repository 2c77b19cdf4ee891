from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictFloat, StrictInt, StrictStr
from typing import Optional, Union

# Strict members keep JSON booleans as bools so the address service can
# reject them with "Invalid coordinates" instead of storing 1.0.
Coordinate = Optional[Union[StrictFloat, StrictInt, StrictStr, StrictBool]]


class AddressCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    label: Optional[str] = Field(None, max_length=50)
    street_address: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    postal_code: Optional[str] = Field(None, max_length=20)
    country: Optional[str] = Field(None, max_length=100)
    latitude: Coordinate = None
    longitude: Coordinate = None
    # Ignored on create: only a user's first address becomes default.
    is_default: Optional[bool] = None


class AddressUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    label: Optional[str] = Field(None, max_length=50)
    street_address: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    postal_code: Optional[str] = Field(None, max_length=20)
    country: Optional[str] = Field(None, max_length=100)
    latitude: Coordinate = None
    longitude: Coordinate = None
    is_default: Optional[bool] = None


class AddressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    label: str
    street_address: str
    city: str
    state: str
    postal_code: str
    country: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_default: bool
    created_at: datetime
    updated_at: datetime


class AddressCount(BaseModel):
    count: int
