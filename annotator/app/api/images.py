"""Image endpoints: upload, view, share and per-owner listing."""

import asyncio
import base64
import binascii
from datetime import datetime
from typing import List, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, status
from pydantic import Field
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from annotator.app.api.deps import CamelModel, ShareTokenQuery, StorageDep
from annotator.app.core.client_identity import ClientKeyDep
from annotator.app.core.config import settings
from annotator.app.core.logging import get_logger
from annotator.app.core.security import generate_share_token
from annotator.app.db.crud import (
    SqlShareLookup,
    create_image,
    create_share,
    get_image_by_id,
    get_image_owner,
    get_share_for_image,
    list_images_with_annotation_counts,
)
from annotator.app.db.dependencies import SessionDep
from annotator.app.exceptions import (
    InternalError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
)
from annotator.app.middleware.rate_limit import GeneralLimitDep, UploadLimitDep
from annotator.app.services.access import AccessAuthorizer, AccessPolicy
from annotator.app.services.storage import StorageError, generate_object_key, thumbnail_key

router = APIRouter(tags=["images"])
logger = get_logger(__name__)


class UploadImageRequest(CamelModel):
    filename: str = Field(..., min_length=1, max_length=255)
    content_type: str = Field(..., min_length=1, max_length=255)


class UploadImageResponse(CamelModel):
    image_id: int
    upload_url: str
    image_url: str
    thumbnail_upload_url: Optional[str] = None


class CreateImageRequest(CamelModel):
    filename: str = Field(..., min_length=1, max_length=255)
    image_data: str = Field(..., min_length=1)


class CreateImageResponse(CamelModel):
    image_id: int
    image_url: str


class ImageResponse(CamelModel):
    id: int
    filename: str
    original_filename: str
    image_url: str
    created_at: datetime
    can_edit: bool


class ShareLinkResponse(CamelModel):
    share_token: str
    share_url: str


class UserImage(CamelModel):
    id: int
    filename: str
    original_filename: str
    image_url: str
    thumbnail_url: Optional[str]
    created_at: datetime
    annotation_count: int


class UserImagesResponse(CamelModel):
    images: List[UserImage]


def decode_image_data(image_data: str) -> bytes:
    """Decode base64 image data, tolerating a ``data:<type>;base64,`` prefix.

    Raises:
        InvalidArgumentError: Data is not valid base64 or decodes to nothing
    """
    payload = image_data.strip()
    if payload.startswith("data:"):
        _, sep, payload = payload.partition(",")
        if not sep:
            raise InvalidArgumentError("Malformed data URL", field="imageData")
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidArgumentError("imageData is not valid base64", field="imageData")
    if not data:
        raise InvalidArgumentError("imageData is empty", field="imageData")
    return data


def build_share_url(image_id: int, share_token: str) -> str:
    return f"{settings.frontend_url}/image/{image_id}?{urlencode({'share': share_token})}"


@router.post(
    "/images/upload",
    response_model=UploadImageResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
async def upload_image(
    _: UploadLimitDep,
    data: UploadImageRequest,
    session: SessionDep,
    storage: StorageDep,
    client_key: ClientKeyDep,
) -> UploadImageResponse:
    """Create an image record owned by the caller and return signed upload URLs."""
    filename = generate_object_key(data.filename)
    thumbnail_filename = (
        thumbnail_key(filename) if data.content_type.lower().startswith("image/") else None
    )

    try:
        image = await create_image(
            session,
            filename=filename,
            original_filename=data.filename,
            user_ip=client_key,
            thumbnail_filename=thumbnail_filename,
        )
    except SQLAlchemyError as e:
        logger.error(f"Database error saving image {filename}: {e}")
        raise InternalError("Failed to save image to database")

    return UploadImageResponse(
        image_id=image.id,
        upload_url=storage.signed_upload_url(filename),
        image_url=storage.public_url(filename),
        thumbnail_upload_url=(
            storage.signed_upload_url(thumbnail_filename) if thumbnail_filename else None
        ),
    )


@router.post(
    "/images",
    response_model=CreateImageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_image_direct(
    _: UploadLimitDep,
    data: CreateImageRequest,
    session: SessionDep,
    storage: StorageDep,
    client_key: ClientKeyDep,
) -> CreateImageResponse:
    """Store base64 image data directly and create the image record."""
    payload = decode_image_data(data.image_data)
    filename = generate_object_key(data.filename)

    try:
        await asyncio.to_thread(storage.put_object, filename, payload)
    except StorageError:
        raise InternalError("Failed to store image")

    try:
        image = await create_image(
            session,
            filename=filename,
            original_filename=data.filename,
            user_ip=client_key,
        )
    except SQLAlchemyError as e:
        logger.error(f"Database error saving image {filename}: {e}")
        raise InternalError("Failed to save image to database")

    return CreateImageResponse(image_id=image.id, image_url=storage.public_url(filename))


@router.get("/images/{image_id}", response_model=ImageResponse)
async def get_image(
    _: GeneralLimitDep,
    image_id: int,
    session: SessionDep,
    storage: StorageDep,
    client_key: ClientKeyDep,
    share_token: ShareTokenQuery = None,
) -> ImageResponse:
    """Retrieve image data for its owner or a share-token holder."""
    image = await get_image_by_id(session, image_id)
    if image is None:
        raise NotFoundError("Image not found")

    authorizer = AccessAuthorizer(SqlShareLookup(session))
    grant = await authorizer.authorize(
        owner_key=image.user_ip,
        share_token=share_token,
        image_id=image.id,
        client_key=client_key,
        policy=AccessPolicy(settings.image_access_policy),
    )

    return ImageResponse(
        id=image.id,
        filename=image.filename,
        original_filename=image.original_filename,
        image_url=storage.public_url(image.filename),
        created_at=image.created_at,
        can_edit=grant.can_edit,
    )


@router.post("/images/{image_id}/share", response_model=ShareLinkResponse)
async def create_share_link(
    _: GeneralLimitDep,
    image_id: int,
    session: SessionDep,
    client_key: ClientKeyDep,
) -> ShareLinkResponse:
    """Create (or return the existing) share link for an image. Owner only."""
    owner_key = await get_image_owner(session, image_id)
    if owner_key is None:
        raise NotFoundError("Image not found")
    if owner_key != client_key:
        raise PermissionDeniedError("Only the image owner can create share links")

    share = await get_share_for_image(session, image_id)
    if share is None:
        try:
            share = await create_share(session, image_id, generate_share_token())
        except IntegrityError:
            # A concurrent request created it first
            await session.rollback()
            share = await get_share_for_image(session, image_id)
            if share is None:
                raise InternalError("Failed to create share link")
        except SQLAlchemyError as e:
            logger.error(f"Database error creating share link for image {image_id}: {e}")
            raise InternalError("Failed to create share link")
        else:
            logger.info(f"Share link created for image {image_id}")

    return ShareLinkResponse(
        share_token=share.share_token,
        share_url=build_share_url(image_id, share.share_token),
    )


@router.get("/user/images", response_model=UserImagesResponse)
async def list_user_images(
    _: GeneralLimitDep,
    session: SessionDep,
    storage: StorageDep,
    client_key: ClientKeyDep,
) -> UserImagesResponse:
    """List images uploaded by the caller, newest first."""
    rows = await list_images_with_annotation_counts(session, client_key)
    return UserImagesResponse(
        images=[
            UserImage(
                id=image.id,
                filename=image.filename,
                original_filename=image.original_filename,
                image_url=storage.public_url(image.filename),
                thumbnail_url=(
                    storage.public_url(image.thumbnail_filename)
                    if image.thumbnail_filename else None
                ),
                created_at=image.created_at,
                annotation_count=count,
            )
            for image, count in rows
        ]
    )
