"""
Invite codes that let a director link a co-parent (an "actor") to their family.

A code looks like ``Ada-123``: up to three letters of the director's first name
and a random three digit number. Codes expire 24 hours after generation and
can be used once.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from timecapsule.db import DbClient, InviteCodeRecord

logger = logging.getLogger(__name__)

INVITE_CODE_TTL_SECONDS = 24 * 60 * 60
MAX_GENERATION_ATTEMPTS = 10


class InviteCodeError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


@dataclass
class InviteCheck:
    is_valid: bool
    is_expired: bool
    director_name: str
    message: str

    def as_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "is_expired": self.is_expired,
            "director_name": self.director_name,
            "message": self.message,
        }


def make_code(first_name: str, rng=random) -> str:
    prefix = (first_name or "User")[:3]
    return f"{prefix}-{rng.randint(100, 999)}"


def format_expiration(ts: float) -> str:
    """Short display form, e.g. ``Oct 20, 2026``."""
    dt = datetime.fromtimestamp(ts, tz=timezone.utc)
    return f"{dt:%b} {dt.day}, {dt.year}"


def generate_invite_code(
    db: DbClient,
    director_id: str,
    first_name: str,
    last_name: str = "",
    *,
    now: Optional[float] = None,
    rng=random,
) -> InviteCodeRecord:
    now = time.time() if now is None else now
    director_name = f"{first_name} {last_name}".strip()
    for _ in range(MAX_GENERATION_ATTEMPTS):
        record = db.create_invite_code(
            director_id,
            code=make_code(first_name, rng),
            director_name=director_name,
            expires_at=now + INVITE_CODE_TTL_SECONDS,
        )
        if record:
            logger.info("Director %s generated invite code %s", director_id, record.id)
            return record
    logger.error(
        "Gave up generating an invite code for director %s after %d attempts",
        director_id,
        MAX_GENERATION_ATTEMPTS,
    )
    raise InviteCodeError(
        500, "Unable to generate unique invite code. Please try again."
    )


def check_invite_code(
    record: Optional[InviteCodeRecord], now: float
) -> InviteCheck:
    if record is None:
        return InviteCheck(False, False, "", "Invalid invite code")
    if record.is_used:
        return InviteCheck(
            False, False, record.director_name, "This invite code has already been used"
        )
    if record.is_expired(now):
        return InviteCheck(
            False, True, record.director_name, "This invite code has expired"
        )
    return InviteCheck(True, False, record.director_name, "Invite code is valid")


def use_invite_code(
    db: DbClient, code: str, actor_id: str, *, now: Optional[float] = None
) -> InviteCodeRecord:
    """Redeem ``code`` for ``actor_id``. Raises InviteCodeError(400) if it cannot be used."""
    now = time.time() if now is None else now
    record = db.find_invite_code(code)
    check = check_invite_code(record, now)
    if not check.is_valid:
        raise InviteCodeError(400, check.message)
    if not db.redeem_invite_code(record.id, actor_id, now):
        # Used by someone else between the check and the update.
        raise InviteCodeError(400, "This invite code has already been used")
    logger.info(
        "User %s joined director %s with invite code %s",
        actor_id,
        record.director_id,
        record.id,
    )
    return record


def revoke_invite_code(db: DbClient, code_id: str, director_id: str) -> None:
    record = db.get_invite_code(code_id)
    if not record:
        raise InviteCodeError(404, "Invite code not found")
    if record.director_id != director_id:
        raise InviteCodeError(
            403, "You do not have permission to revoke this invite code"
        )
    if record.is_used:
        raise InviteCodeError(400, "Cannot revoke a used invite code")
    db.delete_invite_code(code_id)
