"""Image share token CRUD operations."""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from annotator.app.db.models import ImageShare


async def get_share_for_image(
    session: AsyncSession,
    image_id: int
) -> Optional[ImageShare]:
    result = await session.execute(
        select(ImageShare).where(ImageShare.image_id == image_id)
    )
    return result.scalar_one_or_none()


async def share_token_matches(
    session: AsyncSession,
    image_id: int,
    share_token: str
) -> bool:
    """Check whether ``share_token`` is the stored token for ``image_id``."""
    result = await session.execute(
        select(ImageShare.id)
        .where(ImageShare.image_id == image_id)
        .where(ImageShare.share_token == share_token)
    )
    return result.scalar_one_or_none() is not None


async def create_share(
    session: AsyncSession,
    image_id: int,
    share_token: str,
    auto_commit: bool = True
) -> ImageShare:
    """Create the share row for an image.

    Raises:
        IntegrityError: If the image already has a share token
    """
    share = ImageShare(image_id=image_id, share_token=share_token)
    session.add(share)
    if auto_commit:
        await session.commit()
        await session.refresh(share)
    else:
        await session.flush()
    return share


class SqlShareLookup:
    """Share token lookups against the relational store."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def share_token_matches(self, image_id: int, share_token: str) -> bool:
        return await share_token_matches(self._session, image_id, share_token)
