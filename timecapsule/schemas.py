"""
Pydantic schemas for the time capsule API.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Generic, Literal, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel, Field, HttpUrl

from timecapsule.types import MessageType

DataT = TypeVar("DataT")


class ApiResponse(BaseModel, Generic[DataT]):
    success: Literal[True] = True
    data: Optional[DataT] = None
    message: str = "Operation successful"


class ErrorResponse(BaseModel):
    success: Literal[False] = False
    error: str


class CreateChildRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    birth_date: date
    gender: Optional[str] = Field(default=None, max_length=32)


class UpdateChildRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=128)
    birth_date: Optional[date] = None
    gender: Optional[str] = Field(default=None, max_length=32)


class ChildData(BaseModel):
    id: str
    user_id: str
    name: str
    birth_date: str
    gender: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class CreateMessageRequest(BaseModel):
    child_id: UUID
    title: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1)
    type: MessageType
    delivery_date: datetime
    media_url: Optional[HttpUrl] = None
    ai_prompt: Optional[str] = None


class UpdateMessageRequest(BaseModel):
    """Partial update. Delivery state is not client-writable."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    content: Optional[str] = Field(default=None, min_length=1)
    type: Optional[MessageType] = None
    delivery_date: Optional[datetime] = None
    media_url: Optional[HttpUrl] = None
    ai_prompt: Optional[str] = None


class MessageData(BaseModel):
    id: str
    user_id: str
    child_id: str
    title: str
    content: str
    type: MessageType
    delivery_date: datetime
    is_delivered: bool
    media_url: Optional[str] = None
    ai_prompt: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ServiceInfoResponse(BaseModel):
    message: str
    version: str
    status: str


class HealthResponse(BaseModel):
    status: Literal["ok"]


class GenerateInviteCodeRequest(BaseModel):
    """Optional display name for the code prefix; defaults to the account email."""

    first_name: Optional[str] = Field(default=None, min_length=1, max_length=64)
    last_name: Optional[str] = Field(default=None, max_length=64)


class GeneratedInviteCodeData(BaseModel):
    id: str
    code: str
    expires_at: datetime
    formatted_expiration: str


class InviteCodeRequest(BaseModel):
    code: str = Field(..., min_length=3, max_length=50)


class InviteCodeCheckData(BaseModel):
    is_valid: bool
    is_expired: bool
    director_name: str
    message: str


class UsedInviteCodeData(BaseModel):
    director_id: str
    relationship_created: bool


class InviteCodeData(BaseModel):
    id: str
    code: str
    director_id: str
    expires_at: datetime
    is_used: bool
    used_by: Optional[str] = None
    used_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class CategoryData(BaseModel):
    id: str
    name: str
    emoji: str


class SaveCategoriesRequest(BaseModel):
    category_ids: list[Annotated[str, Field(min_length=1)]] = Field(..., min_length=1)


class SavedCategoriesData(BaseModel):
    saved_count: int
    existing_count: int
