"""
Developer portal router - self-service key management for signed-in users.

Not part of the public API: the web tier authenticates the user (cookie
session, out of scope here) and forwards their id in X-User-Id.

Endpoints:
  POST  /developer/keys                 - issue a key (raw key shown once)
  GET   /developer/keys                 - list my keys
  PATCH /developer/keys/{key_id}        - rename
  POST  /developer/keys/{key_id}/revoke - revoke (one-way)
  GET   /developer/keys/{key_id}/usage  - usage of one key
  GET   /developer/usage                - usage of all my keys
"""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from devapi.auth.admin import get_current_owner
from devapi.core.config import Settings
from devapi.core.database import get_db_session
from devapi.core.resources import Resources, get_resources, get_settings
from devapi.schemas.api_keys import ApiKeyCreate, ApiKeyCreated, ApiKeyOut, ApiKeyRename
from devapi.schemas.usage import UsageSummary
from devapi.services.api_keys import (
    ApiKeyNotFound,
    InvalidLabel,
    create_api_key,
    get_owned_key,
    list_api_keys,
    rename_api_key,
    revoke_api_key,
)
from devapi.services.usage import UsageCounter, get_usage_for_key

router = APIRouter(tags=["Developer Portal"])

DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Owner = Annotated[uuid.UUID, Depends(get_current_owner)]
Res = Annotated[Resources, Depends(get_resources)]
AppSettings = Annotated[Settings, Depends(get_settings)]


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="API key not found.",
    )


def _bad_label(exc: InvalidLabel) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=str(exc),
    )


@router.post(
    "/keys",
    response_model=ApiKeyCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Issue a new API key",
    description="The raw key is returned once and cannot be retrieved again.",
)
async def issue_key(
    payload: ApiKeyCreate,
    session: DbSession,
    owner_id: Owner,
    settings: AppSettings,
) -> ApiKeyCreated:
    try:
        issued = await create_api_key(
            session,
            owner_id,
            payload.label,
            rate_limit_rpm=settings.DEFAULT_RATE_LIMIT_RPM,
            expires_at=payload.expires_at,
        )
    except InvalidLabel as exc:
        raise _bad_label(exc) from exc

    return ApiKeyCreated(key_id=issued.key_id, raw_key=issued.raw_key)


@router.get(
    "/keys",
    response_model=list[ApiKeyOut],
    summary="List my API keys",
)
async def list_keys(session: DbSession, owner_id: Owner) -> list[ApiKeyOut]:
    keys = await list_api_keys(session, owner_id)
    return [ApiKeyOut.model_validate(key) for key in keys]


@router.patch(
    "/keys/{key_id}",
    response_model=ApiKeyOut,
    summary="Rename an API key",
)
async def rename_key(
    key_id: uuid.UUID,
    payload: ApiKeyRename,
    session: DbSession,
    owner_id: Owner,
) -> ApiKeyOut:
    try:
        api_key = await rename_api_key(session, owner_id, key_id, payload.label)
    except InvalidLabel as exc:
        raise _bad_label(exc) from exc
    except ApiKeyNotFound:
        raise _not_found() from None
    return ApiKeyOut.model_validate(api_key)


@router.post(
    "/keys/{key_id}/revoke",
    response_model=ApiKeyOut,
    summary="Revoke an API key",
    description="Revocation is permanent. Issue a new key to restore access.",
)
async def revoke_key(
    key_id: uuid.UUID,
    session: DbSession,
    owner_id: Owner,
) -> ApiKeyOut:
    try:
        api_key = await revoke_api_key(session, owner_id, key_id)
    except ApiKeyNotFound:
        raise _not_found() from None
    return ApiKeyOut.model_validate(api_key)


@router.get(
    "/keys/{key_id}/usage",
    response_model=UsageSummary,
    summary="Usage of one of my API keys",
)
async def key_usage(
    key_id: uuid.UUID,
    session: DbSession,
    owner_id: Owner,
    resources: Res,
    settings: AppSettings,
) -> UsageSummary:
    try:
        await get_owned_key(session, owner_id, key_id)
    except ApiKeyNotFound:
        raise _not_found() from None

    return await get_usage_for_key(
        session,
        UsageCounter(resources.redis),
        key_id,
        days=settings.USAGE_HISTORY_DAYS,
    )


@router.get(
    "/usage",
    response_model=dict[uuid.UUID, UsageSummary],
    summary="Usage of all my API keys, keyed by key id",
)
async def all_keys_usage(
    session: DbSession,
    owner_id: Owner,
    resources: Res,
    settings: AppSettings,
) -> dict[uuid.UUID, UsageSummary]:
    counter = UsageCounter(resources.redis)
    out: dict[uuid.UUID, UsageSummary] = {}
    for api_key in await list_api_keys(session, owner_id):
        out[api_key.id] = await get_usage_for_key(
            session, counter, api_key.id, days=settings.USAGE_HISTORY_DAYS,
        )
    return out
