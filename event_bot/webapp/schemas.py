from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    # JSON uses camelCase, Python code snake_case; both spellings are accepted.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class EventCreate(ApiModel):
    name: str
    location: str
    starts_at: datetime
    description: Optional[str] = None
    allowed_transport_types: Optional[List[str]] = None
    disable_link_previews: bool = False
    chat_ids: Optional[List[int]] = None


class EventUpdate(ApiModel):
    name: Optional[str] = None
    location: Optional[str] = None
    starts_at: Optional[datetime] = None
    description: Optional[str] = None
    allowed_transport_types: Optional[List[str]] = None
    disable_link_previews: Optional[bool] = None
    is_active: Optional[bool] = None
    chat_ids: Optional[List[int]] = None


class ParticipantCreate(ApiModel):
    event_id: int
    telegram_id: str
    full_name: str
    phone: str
    transport_type: str
    transport_model: Optional[str] = None
    telegram_nickname: Optional[str] = None


class ParticipantUpdate(ApiModel):
    full_name: Optional[str] = None
    phone: Optional[str] = None
    transport_type: Optional[str] = None
    transport_model: Optional[str] = None
    telegram_nickname: Optional[str] = None
    is_active: Optional[bool] = None


class ReservedNumbersRequest(ApiModel):
    numbers: List[int]


class FixedBindingCreate(ApiModel):
    telegram_nickname: str
    participant_number: int


class ChatCreate(ApiModel):
    chat_id: Union[int, str]
    title: Optional[str] = None
