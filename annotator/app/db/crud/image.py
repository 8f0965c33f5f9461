"""Image CRUD operations."""
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from annotator.app.db.models import Annotation, Image


async def create_image(
    session: AsyncSession,
    filename: str,
    original_filename: str,
    user_ip: str,
    thumbnail_filename: Optional[str] = None,
    auto_commit: bool = True
) -> Image:
    """Create a new image record owned by ``user_ip``.

    Args:
        session: Database session from FastAPI dependency
        filename: Object storage key of the image
        original_filename: Name the client uploaded
        user_ip: Client key of the owner
        thumbnail_filename: Object storage key reserved for the thumbnail
        auto_commit: Whether to commit the transaction. Set to False
                     if you want to control transaction boundaries manually.

    Returns:
        The created Image with its id populated
    """
    image = Image(
        filename=filename,
        original_filename=original_filename,
        user_ip=user_ip,
        thumbnail_filename=thumbnail_filename,
    )
    session.add(image)
    if auto_commit:
        await session.commit()
        await session.refresh(image)
    else:
        await session.flush()
    return image


async def get_image_by_id(
    session: AsyncSession,
    image_id: int
) -> Optional[Image]:
    result = await session.execute(
        select(Image).where(Image.id == image_id)
    )
    return result.scalar_one_or_none()


async def get_image_owner(
    session: AsyncSession,
    image_id: int
) -> Optional[str]:
    """Get the owner client key for an image, or None if the image does not exist."""
    result = await session.execute(
        select(Image.user_ip).where(Image.id == image_id)
    )
    return result.scalar_one_or_none()


async def list_images_with_annotation_counts(
    session: AsyncSession,
    user_ip: str
) -> List[Tuple[Image, int]]:
    """List images owned by ``user_ip``, newest first, with annotation counts.

    Returns:
        List of (image, annotation_count) tuples
    """
    annotation_count = func.count(Annotation.id).label("annotation_count")
    stmt = (
        select(Image, annotation_count)
        .outerjoin(Annotation, Annotation.image_id == Image.id)
        .where(Image.user_ip == user_ip)
        .group_by(Image.id)
        .order_by(Image.created_at.desc(), Image.id.desc())
    )
    result = await session.execute(stmt)
    return [(image, int(count)) for image, count in result.all()]
