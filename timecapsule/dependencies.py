"""
Dependency wiring for the FastAPI app and the delivery scheduler.
"""

from __future__ import annotations

import logging

import requests
from fastapi import Depends, Header, HTTPException

from timecapsule.auth import (
    AuthenticationError,
    AuthUser,
    IdentityProvider,
    InMemoryIdentityProvider,
    SupabaseIdentityProvider,
)
from timecapsule.config import get_settings
from timecapsule.db import DbClient, InMemoryDbClient, PostgresDbClient
from timecapsule.delivery import DeliverySweep
from timecapsule.locks import InMemorySweepLock, RedisSweepLock, SweepLock
from timecapsule.scheduler import DeliveryScheduler

logger = logging.getLogger(__name__)

_db_client: DbClient | None = None
_identity_provider: IdentityProvider | None = None
_sweep_lock: SweepLock | None = None


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so state persists across requests and sweeps.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _db_client = InMemoryDbClient()
    else:
        _db_client = PostgresDbClient(
            settings.database_url,
            statement_timeout_seconds=settings.delivery_call_timeout_seconds,
        )
    return _db_client


def get_identity_provider() -> IdentityProvider:
    global _identity_provider
    if _identity_provider:
        return _identity_provider

    settings = get_settings()
    if (
        settings.use_in_memory_backends
        or not settings.supabase_url
        or not settings.supabase_service_role_key
    ):
        _identity_provider = InMemoryIdentityProvider()
    else:
        _identity_provider = SupabaseIdentityProvider(
            url=settings.supabase_url,
            api_key=settings.supabase_service_role_key,
        )
    return _identity_provider


def get_sweep_lock() -> SweepLock:
    """
    Return a singleton sweep lock. Redis-backed when configured so several
    scheduler processes never sweep at the same time.
    """
    global _sweep_lock
    if _sweep_lock:
        return _sweep_lock

    settings = get_settings()
    if settings.redis_url:
        _sweep_lock = RedisSweepLock(
            url=settings.redis_url,
            key=settings.delivery_lock_key,
            ttl_seconds=settings.delivery_lock_ttl_seconds,
        )
    else:
        _sweep_lock = InMemorySweepLock()
    return _sweep_lock


def build_scheduler(interval_seconds: float | None = None) -> DeliveryScheduler:
    settings = get_settings()
    sweep = DeliverySweep(
        get_db_client(),
        call_timeout_seconds=settings.delivery_call_timeout_seconds,
    )
    return DeliveryScheduler(
        sweep,
        interval_seconds or settings.message_check_interval_seconds,
        lock=get_sweep_lock(),
    )


def get_current_user(
    authorization: str | None = Header(default=None),
    provider: IdentityProvider = Depends(get_identity_provider),
) -> AuthUser:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=401,
            detail="Authentication required. Please provide a valid token.",
        )
    token = authorization.split(" ", 1)[1].strip()
    try:
        return provider.get_user(token)
    except AuthenticationError:
        raise HTTPException(status_code=401, detail="Invalid or expired token.")
    except requests.RequestException:
        logger.exception("Identity provider request failed")
        raise HTTPException(status_code=500, detail="Authentication error occurred.")
