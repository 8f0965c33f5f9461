"""Ownership and share-token authorization.

Two policies exist and each endpoint family is bound to one of them:

strict
    The owner, or anyone holding the image's share token, gets full
    read/write/comment access. Everyone else is denied.

edit_restricted
    Used for image viewing. A valid share token grants ``can_edit`` but the
    caller is never treated as the owner. A supplied but non-matching token
    is reported as not found, so a guesser holding a wrong token learns
    nothing about whether the image exists. No token at all is a plain
    permission failure.

A missing image or annotation is always reported as not found before any
ownership comparison happens.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from annotator.app.core.logging import get_logger
from annotator.app.db.crud import SqlShareLookup, get_annotation_owner, get_image_owner
from annotator.app.exceptions import NotFoundError, PermissionDeniedError

logger = get_logger(__name__)


class AccessPolicy(str, Enum):
    STRICT = "strict"
    EDIT_RESTRICTED = "edit_restricted"


class AccessDecision(str, Enum):
    OWNER = "owner"
    SHARED_GUEST = "shared_guest"
    DENIED = "denied"


@dataclass(frozen=True)
class AccessGrant:
    """Outcome of an authorization check. Computed per request, never stored."""
    decision: AccessDecision
    can_edit: bool

    @property
    def is_owner(self) -> bool:
        return self.decision is AccessDecision.OWNER

    @property
    def allowed(self) -> bool:
        return self.decision is not AccessDecision.DENIED


OWNER_GRANT = AccessGrant(decision=AccessDecision.OWNER, can_edit=True)
GUEST_GRANT = AccessGrant(decision=AccessDecision.SHARED_GUEST, can_edit=True)


class ShareLookup(Protocol):
    """Point query against stored share tokens."""

    async def share_token_matches(self, image_id: int, share_token: str) -> bool:
        ...


class AccessAuthorizer:
    """Decides what a caller may do with an image and everything under it."""

    def __init__(self, share_lookup: ShareLookup):
        self._share_lookup = share_lookup

    async def authorize(
        self,
        owner_key: str,
        share_token: Optional[str],
        image_id: int,
        client_key: str,
        policy: AccessPolicy = AccessPolicy.STRICT,
    ) -> AccessGrant:
        """Authorize ``client_key`` against an existing image.

        Args:
            owner_key: Client key recorded as the image owner
            share_token: Token supplied by the caller, if any
            image_id: Image being accessed (directly or through a child)
            client_key: Resolved identity of the caller
            policy: Which sharing policy applies to this endpoint family

        Returns:
            AccessGrant for owners and valid share-token holders

        Raises:
            PermissionDeniedError: Caller is neither owner nor token holder
            NotFoundError: edit_restricted policy and a wrong token was supplied
        """
        policy = AccessPolicy(policy)

        if client_key == owner_key:
            return OWNER_GRANT

        if share_token and await self._share_lookup.share_token_matches(image_id, share_token):
            return GUEST_GRANT

        if policy is AccessPolicy.EDIT_RESTRICTED and share_token:
            logger.info(f"Invalid share token presented for image {image_id}")
            raise NotFoundError("Image not found or invalid share token")

        raise PermissionDeniedError("Access denied")


async def require_image_access(
    session: AsyncSession,
    image_id: int,
    client_key: str,
    share_token: Optional[str],
    policy: AccessPolicy,
) -> AccessGrant:
    """Load the image's owner and authorize the caller against it.

    Raises:
        NotFoundError: Image does not exist
    """
    owner_key = await get_image_owner(session, image_id)
    if owner_key is None:
        raise NotFoundError("Image not found")

    authorizer = AccessAuthorizer(SqlShareLookup(session))
    return await authorizer.authorize(owner_key, share_token, image_id, client_key, policy)


async def require_annotation_access(
    session: AsyncSession,
    annotation_id: int,
    client_key: str,
    share_token: Optional[str],
    policy: AccessPolicy,
) -> AccessGrant:
    """Authorize the caller against the image an annotation belongs to.

    Raises:
        NotFoundError: Annotation does not exist
    """
    owner = await get_annotation_owner(session, annotation_id)
    if owner is None:
        raise NotFoundError("Annotation not found")

    image_id, owner_key = owner
    authorizer = AccessAuthorizer(SqlShareLookup(session))
    return await authorizer.authorize(owner_key, share_token, image_id, client_key, policy)
