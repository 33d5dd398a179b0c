"""
HTTP routes for the time capsule API.
"""

from __future__ import annotations

import logging
import time
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException

from timecapsule import invites
from timecapsule.auth import AuthUser
from timecapsule.db import DbClient
from timecapsule.dependencies import get_current_user, get_db_client
from timecapsule.invites import InviteCodeError
from timecapsule.schemas import (
    ApiResponse,
    CategoryData,
    ChildData,
    CreateChildRequest,
    CreateMessageRequest,
    GeneratedInviteCodeData,
    GenerateInviteCodeRequest,
    InviteCodeCheckData,
    InviteCodeData,
    InviteCodeRequest,
    MessageData,
    SaveCategoriesRequest,
    SavedCategoriesData,
    UpdateChildRequest,
    UpdateMessageRequest,
    UsedInviteCodeData,
)
from timecapsule.types import to_iso, to_timestamp

logger = logging.getLogger(__name__)

router = APIRouter()

# Columns that cannot be cleared by sending an explicit null.
_REQUIRED_MESSAGE_FIELDS = {"title", "content", "type", "delivery_date"}
_REQUIRED_CHILD_FIELDS = {"name", "birth_date"}


def _message_changes(payload: UpdateMessageRequest) -> dict:
    changes = {}
    for key, value in payload.model_dump(exclude_unset=True).items():
        if value is None and key in _REQUIRED_MESSAGE_FIELDS:
            continue
        if key == "delivery_date":
            value = to_timestamp(value)
        elif key == "type":
            value = value.value
        elif key == "media_url" and value is not None:
            value = str(value)
        changes[key] = value
    return changes


def _child_changes(payload: UpdateChildRequest) -> dict:
    changes = {}
    for key, value in payload.model_dump(exclude_unset=True).items():
        if value is None and key in _REQUIRED_CHILD_FIELDS:
            continue
        if key == "birth_date":
            value = value.isoformat()
        changes[key] = value
    return changes


def _require_child(db: DbClient, child_id: str, user: AuthUser):
    child = db.get_child(child_id, user.id)
    if not child:
        raise HTTPException(status_code=404, detail="Child not found")
    return child


@router.post(
    "/children", response_model=ApiResponse[ChildData], status_code=201
)
def create_child(
    payload: CreateChildRequest,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    child = db.create_child(
        user.id,
        name=payload.name,
        birth_date=payload.birth_date.isoformat(),
        gender=payload.gender,
    )
    logger.info("User %s created child profile %s", user.id, child.id)
    return ApiResponse(
        data=child.as_dict(), message="Child profile created successfully"
    )


@router.get("/children", response_model=ApiResponse[list[ChildData]])
def list_children(
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    children = [child.as_dict() for child in db.list_children(user.id)]
    return ApiResponse(data=children, message="Children retrieved successfully")


@router.get("/children/{child_id}", response_model=ApiResponse[ChildData])
def get_child(
    child_id: UUID,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    child = _require_child(db, str(child_id), user)
    return ApiResponse(data=child.as_dict(), message="Child retrieved successfully")


@router.put("/children/{child_id}", response_model=ApiResponse[ChildData])
def update_child(
    child_id: UUID,
    payload: UpdateChildRequest,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    child = db.update_child(str(child_id), user.id, _child_changes(payload))
    if not child:
        raise HTTPException(status_code=404, detail="Child not found")
    return ApiResponse(data=child.as_dict(), message="Child updated successfully")


@router.delete("/children/{child_id}", response_model=ApiResponse[ChildData])
def delete_child(
    child_id: UUID,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    if not db.delete_child(str(child_id), user.id):
        raise HTTPException(status_code=404, detail="Child not found")
    logger.info("User %s deleted child profile %s", user.id, child_id)
    return ApiResponse(data=None, message="Child deleted successfully")


@router.post(
    "/messages", response_model=ApiResponse[MessageData], status_code=201
)
def create_message(
    payload: CreateMessageRequest,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    """
    Schedule a message for a child owned by the caller.
    """
    child = _require_child(db, str(payload.child_id), user)
    message = db.create_message(
        user.id,
        child_id=child.id,
        title=payload.title,
        content=payload.content,
        type=payload.type,
        delivery_date=to_timestamp(payload.delivery_date),
        media_url=str(payload.media_url) if payload.media_url else None,
        ai_prompt=payload.ai_prompt,
    )
    logger.info(
        "User %s scheduled message %s for child %s", user.id, message.id, child.id
    )
    return ApiResponse(data=message.as_dict(), message="Message created successfully")


@router.get("/messages", response_model=ApiResponse[list[MessageData]])
def list_messages(
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    messages = [message.as_dict() for message in db.list_messages(user.id)]
    return ApiResponse(data=messages, message="Messages retrieved successfully")


@router.get(
    "/messages/child/{child_id}", response_model=ApiResponse[list[MessageData]]
)
def list_messages_for_child(
    child_id: UUID,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    child = _require_child(db, str(child_id), user)
    messages = [
        message.as_dict() for message in db.list_messages(user.id, child_id=child.id)
    ]
    return ApiResponse(data=messages, message="Messages retrieved successfully")


@router.get("/messages/{message_id}", response_model=ApiResponse[MessageData])
def get_message(
    message_id: UUID,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    message = db.get_message(str(message_id), user.id)
    if not message:
        raise HTTPException(status_code=404, detail="Message not found")
    return ApiResponse(
        data=message.as_dict(), message="Message retrieved successfully"
    )


@router.put("/messages/{message_id}", response_model=ApiResponse[MessageData])
def update_message(
    message_id: UUID,
    payload: UpdateMessageRequest,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    message = db.update_message(str(message_id), user.id, _message_changes(payload))
    if not message:
        raise HTTPException(status_code=404, detail="Message not found")
    return ApiResponse(data=message.as_dict(), message="Message updated successfully")


@router.delete("/messages/{message_id}", response_model=ApiResponse[MessageData])
def delete_message(
    message_id: UUID,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    if not db.delete_message(str(message_id), user.id):
        raise HTTPException(status_code=404, detail="Message not found")
    logger.info("User %s deleted message %s", user.id, message_id)
    return ApiResponse(data=None, message="Message deleted successfully")


@router.post(
    "/invite-codes/generate", response_model=ApiResponse[GeneratedInviteCodeData]
)
def generate_invite_code(
    payload: Optional[GenerateInviteCodeRequest] = None,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    """
    Create a single-use code a co-parent can redeem within 24 hours.
    """
    payload = payload or GenerateInviteCodeRequest()
    first_name = payload.first_name or user.email.split("@")[0] or "User"
    try:
        record = invites.generate_invite_code(
            db, user.id, first_name, payload.last_name or ""
        )
    except InviteCodeError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
    data = {
        "id": record.id,
        "code": record.code,
        "expires_at": to_iso(record.expires_at),
        "formatted_expiration": invites.format_expiration(record.expires_at),
    }
    return ApiResponse(data=data, message="Invite code generated successfully")


@router.post("/invite-codes/validate", response_model=ApiResponse[InviteCodeCheckData])
def validate_invite_code(
    payload: InviteCodeRequest,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    check = invites.check_invite_code(db.find_invite_code(payload.code), time.time())
    return ApiResponse(data=check.as_dict(), message=check.message)


@router.post("/invite-codes/use", response_model=ApiResponse[UsedInviteCodeData])
def use_invite_code(
    payload: InviteCodeRequest,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    try:
        record = invites.use_invite_code(db, payload.code, user.id)
    except InviteCodeError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
    return ApiResponse(
        data={"director_id": record.director_id, "relationship_created": True},
        message="Invite code used successfully",
    )


@router.get("/invite-codes/my-codes", response_model=ApiResponse[list[InviteCodeData]])
def list_invite_codes(
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    codes = [code.as_dict() for code in db.list_invite_codes(user.id)]
    return ApiResponse(data=codes, message="Invite codes retrieved successfully")


@router.delete("/invite-codes/{code_id}", response_model=ApiResponse[InviteCodeData])
def revoke_invite_code(
    code_id: UUID,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    try:
        invites.revoke_invite_code(db, str(code_id), user.id)
    except InviteCodeError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
    logger.info("User %s revoked invite code %s", user.id, code_id)
    return ApiResponse(data=None, message="Invite code revoked successfully")


@router.get("/categories", response_model=ApiResponse[list[CategoryData]])
def list_categories(db: DbClient = Depends(get_db_client)):
    categories = [category.as_dict() for category in db.list_categories()]
    return ApiResponse(data=categories, message="Categories retrieved successfully")


@router.get("/categories/director", response_model=ApiResponse[list[CategoryData]])
def list_director_categories(
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    categories = [c.as_dict() for c in db.list_director_categories(user.id)]
    return ApiResponse(data=categories, message="Categories retrieved successfully")


@router.post("/categories/director", response_model=ApiResponse[SavedCategoriesData])
def save_director_categories(
    payload: SaveCategoriesRequest,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    known = {category.id for category in db.list_categories()}
    invalid = [c for c in dict.fromkeys(payload.category_ids) if c not in known]
    if invalid:
        raise HTTPException(
            status_code=400, detail=f"Invalid category IDs: {', '.join(invalid)}"
        )
    saved, existing = db.save_director_categories(user.id, payload.category_ids)
    if saved:
        message = f"Successfully saved {saved} new category selection(s)"
    else:
        message = "All selected categories were already saved"
    return ApiResponse(
        data={"saved_count": saved, "existing_count": existing}, message=message
    )
