"""
Review submission router - integrators post reviews on behalf of their users.

POST /v1/reviews
  1. Authenticates via API key and enforces the per-minute budget.
  2. Validates the payload (Pydantic) - at least one signal, one identity.
  3. Resolves external_user_id → anon_id (hashed, scoped to the key)
     unless the caller already has an anon_id.
  4. Persists the review as 'pending_external', attributed to the key.
  5. Returns {id, anon_id} with 201 Created.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from devapi.auth.dependencies import Principal
from devapi.auth.rate_limit import api_body, require_api_access
from devapi.core.database import get_db_session
from devapi.core.resources import Resources, get_resources
from devapi.models.review import Review
from devapi.schemas.reviews import ReviewCreate, ReviewCreated
from devapi.services.identity import resolve_anon_id
from devapi.services.usage import UsageCounter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Reviews"])

# Type aliases for cleaner signatures
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Auth = Annotated[Principal, Depends(require_api_access)]
Res = Annotated[Resources, Depends(get_resources)]
Payload = Annotated[ReviewCreate, Depends(api_body(ReviewCreate))]


@router.post(
    "/reviews",
    response_model=ReviewCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a review for a coffee or roaster",
    description=(
        "Provide either anon_id (from POST /v1/users) or external_user_id "
        "(resolved to a stable anon_id for this key). Rate limited."
    ),
)
async def submit_review(
    payload: Payload,
    session: DbSession,
    auth: Auth,
    resources: Res,
) -> ReviewCreated:
    comment = payload.comment.strip() if payload.comment else None

    try:
        # ── 1. Identity ─────────────────────────────────────
        if payload.anon_id is not None:
            anon_id = payload.anon_id
        else:
            anon_id = await resolve_anon_id(session, auth.key_id, payload.external_user_id)

        # ── 2. Persist ──────────────────────────────────────
        review = Review(
            entity_type=payload.entity_type,
            entity_id=payload.entity_id,
            anon_id=anon_id,
            source_key_id=auth.key_id,
            rating=payload.rating,
            recommend=payload.recommend,
            value_for_money=payload.value_for_money,
            works_with_milk=payload.works_with_milk,
            brew_method=payload.brew_method,
            comment=comment or None,
            status="pending_external",
        )
        session.add(review)
        await session.commit()
    except Exception:
        await session.rollback()
        logger.exception("Failed to create review for key %s", auth.key_id)
        await UsageCounter(resources.redis).record_error(auth.key_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create review. Please try again.",
        )

    return ReviewCreated(id=review.id, anon_id=anon_id)
