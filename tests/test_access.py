"""Tests for the ownership / share-token authorizer."""

from unittest.mock import AsyncMock

import pytest

from annotator.app.exceptions import NotFoundError, PermissionDeniedError
from annotator.app.services.access import (
    AccessAuthorizer,
    AccessDecision,
    AccessPolicy,
)

OWNER = "1.1.1.1"
STRANGER = "2.2.2.2"
IMAGE_ID = 7


def _authorizer(token_matches: bool) -> tuple[AccessAuthorizer, AsyncMock]:
    lookup = AsyncMock()
    lookup.share_token_matches = AsyncMock(return_value=token_matches)
    return AccessAuthorizer(lookup), lookup


class TestStrictPolicy:
    @pytest.mark.asyncio
    async def test_owner_allowed_without_lookup(self):
        authorizer, lookup = _authorizer(token_matches=False)
        grant = await authorizer.authorize(OWNER, None, IMAGE_ID, OWNER, AccessPolicy.STRICT)
        assert grant.decision is AccessDecision.OWNER
        assert grant.can_edit is True
        assert grant.is_owner is True
        lookup.share_token_matches.assert_not_called()

    @pytest.mark.asyncio
    async def test_owner_allowed_even_with_wrong_token(self):
        authorizer, _ = _authorizer(token_matches=False)
        grant = await authorizer.authorize(OWNER, "bogus", IMAGE_ID, OWNER, AccessPolicy.STRICT)
        assert grant.is_owner is True

    @pytest.mark.asyncio
    async def test_guest_with_valid_token(self):
        authorizer, lookup = _authorizer(token_matches=True)
        grant = await authorizer.authorize(OWNER, "tok", IMAGE_ID, STRANGER, AccessPolicy.STRICT)
        assert grant.decision is AccessDecision.SHARED_GUEST
        assert grant.can_edit is True
        assert grant.is_owner is False
        assert grant.allowed is True
        lookup.share_token_matches.assert_awaited_once_with(IMAGE_ID, "tok")

    @pytest.mark.asyncio
    async def test_stranger_without_token_denied(self):
        authorizer, lookup = _authorizer(token_matches=True)
        with pytest.raises(PermissionDeniedError):
            await authorizer.authorize(OWNER, None, IMAGE_ID, STRANGER, AccessPolicy.STRICT)
        lookup.share_token_matches.assert_not_called()

    @pytest.mark.asyncio
    async def test_stranger_with_wrong_token_denied(self):
        authorizer, _ = _authorizer(token_matches=False)
        with pytest.raises(PermissionDeniedError):
            await authorizer.authorize(OWNER, "wrong", IMAGE_ID, STRANGER, AccessPolicy.STRICT)

    @pytest.mark.asyncio
    async def test_default_policy_is_strict(self):
        authorizer, _ = _authorizer(token_matches=False)
        with pytest.raises(PermissionDeniedError):
            await authorizer.authorize(OWNER, "wrong", IMAGE_ID, STRANGER)


class TestEditRestrictedPolicy:
    @pytest.mark.asyncio
    async def test_owner_allowed(self):
        authorizer, _ = _authorizer(token_matches=False)
        grant = await authorizer.authorize(
            OWNER, None, IMAGE_ID, OWNER, AccessPolicy.EDIT_RESTRICTED
        )
        assert grant.is_owner is True
        assert grant.can_edit is True

    @pytest.mark.asyncio
    async def test_valid_token_grants_edit_but_not_ownership(self):
        authorizer, _ = _authorizer(token_matches=True)
        grant = await authorizer.authorize(
            OWNER, "tok", IMAGE_ID, STRANGER, AccessPolicy.EDIT_RESTRICTED
        )
        assert grant.is_owner is False
        assert grant.can_edit is True

    @pytest.mark.asyncio
    async def test_wrong_token_reported_as_not_found(self):
        authorizer, _ = _authorizer(token_matches=False)
        with pytest.raises(NotFoundError):
            await authorizer.authorize(
                OWNER, "wrong", IMAGE_ID, STRANGER, AccessPolicy.EDIT_RESTRICTED
            )

    @pytest.mark.asyncio
    async def test_no_token_is_permission_denied(self):
        authorizer, _ = _authorizer(token_matches=False)
        with pytest.raises(PermissionDeniedError):
            await authorizer.authorize(
                OWNER, None, IMAGE_ID, STRANGER, AccessPolicy.EDIT_RESTRICTED
            )

    @pytest.mark.asyncio
    async def test_policy_accepts_string_value(self):
        authorizer, _ = _authorizer(token_matches=False)
        with pytest.raises(NotFoundError):
            await authorizer.authorize(OWNER, "wrong", IMAGE_ID, STRANGER, "edit_restricted")
