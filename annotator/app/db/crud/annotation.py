"""Annotation CRUD operations."""
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from annotator.app.db.models import Annotation, Image


async def create_annotation(
    session: AsyncSession,
    image_id: int,
    x: float,
    y: float,
    radius: float,
    auto_commit: bool = True
) -> Annotation:
    """Create a circular annotation on an image.

    Args:
        session: Database session from FastAPI dependency
        image_id: Image the circle is drawn on
        x: Centre x coordinate in image pixels
        y: Centre y coordinate in image pixels
        radius: Circle radius in image pixels
        auto_commit: Whether to commit the transaction

    Returns:
        The created Annotation with id and created_at populated
    """
    annotation = Annotation(image_id=image_id, x=x, y=y, radius=radius)
    session.add(annotation)
    if auto_commit:
        await session.commit()
        await session.refresh(annotation)
    else:
        await session.flush()
    return annotation


async def get_annotation_owner(
    session: AsyncSession,
    annotation_id: int
) -> Optional[Tuple[int, str]]:
    """Resolve the parent image and its owner for an annotation.

    Returns:
        (image_id, owner client key), or None if the annotation does not exist
    """
    result = await session.execute(
        select(Annotation.image_id, Image.user_ip)
        .join(Image, Image.id == Annotation.image_id)
        .where(Annotation.id == annotation_id)
    )
    row = result.one_or_none()
    if row is None:
        return None
    return row.image_id, row.user_ip


async def list_annotations_for_image(
    session: AsyncSession,
    image_id: int
) -> List[Annotation]:
    """List annotations for an image in creation order."""
    result = await session.execute(
        select(Annotation)
        .where(Annotation.image_id == image_id)
        .order_by(Annotation.created_at.asc(), Annotation.id.asc())
    )
    return list(result.scalars().all())
