"""
External user registration.

POST /v1/users - map an integrator's user id to a stable anon_id that can
be reused in POST /v1/reviews. Calling it again with the same
external_user_id under the same key returns the same anon_id.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from devapi.auth.dependencies import Principal
from devapi.auth.rate_limit import api_body, require_api_access
from devapi.core.database import get_db_session
from devapi.schemas.reviews import ExternalUserCreate, ExternalUserOut
from devapi.services.identity import resolve_anon_id

router = APIRouter(tags=["Users"])

DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Auth = Annotated[Principal, Depends(require_api_access)]
Payload = Annotated[ExternalUserCreate, Depends(api_body(ExternalUserCreate))]


@router.post(
    "/users",
    response_model=ExternalUserOut,
    summary="Register an external user and get a stable anon_id",
)
async def register_external_user(
    payload: Payload,
    session: DbSession,
    auth: Auth,
) -> ExternalUserOut:
    anon_id = await resolve_anon_id(session, auth.key_id, payload.external_user_id)
    return ExternalUserOut(anon_id=anon_id)
