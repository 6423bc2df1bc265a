"""Tests for API key authentication (extract_api_key + authenticate)."""

import asyncio
import datetime

import pytest
from sqlalchemy import update

from devapi.auth.dependencies import Principal, authenticate, extract_api_key
from devapi.auth.errors import AuthError, AuthFailure, StoreUnavailable
from devapi.auth.hashing import generate_api_key
from devapi.models.api_key import APIKey
from devapi.services.api_keys import create_api_key, revoke_api_key

UTC = datetime.timezone.utc


class TestExtractApiKey:

    def test_bearer_header(self):
        assert extract_api_key("Bearer icb_live_x", None) == "icb_live_x"

    def test_bearer_is_case_insensitive(self):
        assert extract_api_key("bearer icb_live_x", None) == "icb_live_x"

    def test_bearer_wins_over_x_api_key(self):
        assert extract_api_key("Bearer icb_live_a", "icb_live_b") == "icb_live_a"

    def test_x_api_key_fallback(self):
        assert extract_api_key(None, "icb_live_b") == "icb_live_b"
        assert extract_api_key("Basic abc", "icb_live_b") == "icb_live_b"

    def test_blank_values_count_as_missing(self):
        assert extract_api_key("Bearer   ", "  ") is None
        assert extract_api_key(None, None) is None


class TestAuthenticate:
    """Every failure mode maps to its AuthFailure; success returns a Principal."""

    async def test_valid_key(self, session, owner_id):
        issued = await create_api_key(session, owner_id, "Prod Integration")

        principal = await authenticate(session, issued.raw_key)

        assert principal == Principal(
            key_id=issued.key_id,
            owner_id=owner_id,
            rate_limit_rpm=60,
        )

    @pytest.mark.parametrize("raw_key", [None, ""])
    async def test_missing(self, session, raw_key):
        with pytest.raises(AuthError) as exc_info:
            await authenticate(session, raw_key)
        assert exc_info.value.reason is AuthFailure.MISSING

    async def test_malformed(self, session):
        with pytest.raises(AuthError) as exc_info:
            await authenticate(session, "sk_live_0123456789")
        assert exc_info.value.reason is AuthFailure.MALFORMED

    async def test_unknown(self, session):
        raw_key, _ = generate_api_key()
        with pytest.raises(AuthError) as exc_info:
            await authenticate(session, raw_key)
        assert exc_info.value.reason is AuthFailure.UNKNOWN

    async def test_revoked(self, session, owner_id):
        issued = await create_api_key(session, owner_id, "Old")
        await revoke_api_key(session, owner_id, issued.key_id)

        with pytest.raises(AuthError) as exc_info:
            await authenticate(session, issued.raw_key)
        assert exc_info.value.reason is AuthFailure.REVOKED

    async def test_expired(self, session, owner_id):
        past = datetime.datetime.now(UTC) - datetime.timedelta(days=1)
        issued = await create_api_key(session, owner_id, "Trial", expires_at=past)

        with pytest.raises(AuthError) as exc_info:
            await authenticate(session, issued.raw_key)
        assert exc_info.value.reason is AuthFailure.EXPIRED

    async def test_future_expiry_is_accepted(self, session, owner_id):
        future = datetime.datetime.now(UTC) + datetime.timedelta(days=1)
        issued = await create_api_key(session, owner_id, "Trial", expires_at=future)

        principal = await authenticate(session, issued.raw_key)
        assert principal.key_id == issued.key_id

    async def test_expiry_is_evaluated_against_now(self, session, owner_id):
        expires_at = datetime.datetime(2030, 1, 1, tzinfo=UTC)
        issued = await create_api_key(session, owner_id, "Trial", expires_at=expires_at)

        before = datetime.datetime(2029, 12, 31, tzinfo=UTC)
        after = datetime.datetime(2030, 1, 2, tzinfo=UTC)

        assert (await authenticate(session, issued.raw_key, now=before)).key_id == issued.key_id
        with pytest.raises(AuthError) as exc_info:
            await authenticate(session, issued.raw_key, now=after)
        assert exc_info.value.reason is AuthFailure.EXPIRED

    async def test_revoked_beats_expiry(self, session, owner_id):
        future = datetime.datetime.now(UTC) + datetime.timedelta(days=365)
        past = datetime.datetime.now(UTC) - datetime.timedelta(days=365)
        for expires_at in (None, future, past):
            issued = await create_api_key(session, owner_id, "Key", expires_at=expires_at)
            await revoke_api_key(session, owner_id, issued.key_id)

            with pytest.raises(AuthError) as exc_info:
                await authenticate(session, issued.raw_key)
            assert exc_info.value.reason is AuthFailure.REVOKED

    async def test_rate_limit_is_clamped(self, session, owner_id):
        issued = await create_api_key(session, owner_id, "Key")
        await session.execute(
            update(APIKey).where(APIKey.id == issued.key_id).values(rate_limit_rpm=50_000)
        )
        await session.commit()

        principal = await authenticate(session, issued.raw_key)
        assert principal.rate_limit_rpm == 1000


class TestKeyStoreFailures:
    """A slow or broken key store fails closed."""

    async def test_timeout_raises_store_unavailable(self):
        class SlowSession:
            async def execute(self, _stmt):
                await asyncio.sleep(1)

        raw_key, _ = generate_api_key()
        with pytest.raises(StoreUnavailable) as exc_info:
            await authenticate(SlowSession(), raw_key, timeout=0.01)
        assert exc_info.value.store == "key store"

    async def test_connection_error_raises_store_unavailable(self):
        class BrokenSession:
            async def execute(self, _stmt):
                raise ConnectionRefusedError("db down")

        raw_key, _ = generate_api_key()
        with pytest.raises(StoreUnavailable):
            await authenticate(BrokenSession(), raw_key)
