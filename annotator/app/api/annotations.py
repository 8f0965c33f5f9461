"""Annotation circles and their chat threads."""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, status
from pydantic import Field
from sqlalchemy.exc import SQLAlchemyError

from annotator.app.api.deps import CamelModel, ShareTokenQuery
from annotator.app.core.client_identity import ClientKeyDep
from annotator.app.core.config import settings
from annotator.app.core.logging import get_logger
from annotator.app.db.crud import (
    create_annotation,
    create_chat_message,
    list_annotations_for_image,
    list_chat_messages,
)
from annotator.app.db.dependencies import SessionDep
from annotator.app.exceptions import InternalError, InvalidArgumentError
from annotator.app.middleware.rate_limit import ChatLimitDep, GeneralLimitDep
from annotator.app.services.access import (
    AccessPolicy,
    require_annotation_access,
    require_image_access,
)

router = APIRouter(tags=["annotations"])
logger = get_logger(__name__)


class CreateAnnotationRequest(CamelModel):
    image_id: int
    x: float = Field(..., allow_inf_nan=False)
    y: float = Field(..., allow_inf_nan=False)
    radius: float = Field(..., gt=0, allow_inf_nan=False)
    share_token: Optional[str] = None


class AnnotationResponse(CamelModel):
    id: int
    image_id: int
    x: float
    y: float
    radius: float
    created_at: datetime


class AnnotationListResponse(CamelModel):
    annotations: List[AnnotationResponse]


class CreateMessageRequest(CamelModel):
    message: str
    share_token: Optional[str] = None


class MessageResponse(CamelModel):
    id: int
    annotation_id: int
    message: str
    created_at: datetime


class MessageListResponse(CamelModel):
    messages: List[MessageResponse]


def _annotation_policy() -> AccessPolicy:
    return AccessPolicy(settings.annotation_access_policy)


def normalize_message(message: str, max_length: int) -> str:
    """Trim a chat message and enforce its length bounds.

    Raises:
        InvalidArgumentError: Message is blank or longer than ``max_length``
    """
    text = message.strip()
    if not text:
        raise InvalidArgumentError("Message cannot be empty", field="message")
    if len(text) > max_length:
        raise InvalidArgumentError(
            f"Message cannot exceed {max_length} characters", field="message"
        )
    return text


@router.post(
    "/annotations",
    response_model=AnnotationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_annotation(
    _: GeneralLimitDep,
    data: CreateAnnotationRequest,
    session: SessionDep,
    client_key: ClientKeyDep,
) -> AnnotationResponse:
    """Draw a circle on an image. Owner or share-token holder only."""
    await require_image_access(
        session, data.image_id, client_key, data.share_token, _annotation_policy()
    )

    try:
        annotation = await create_annotation(
            session,
            image_id=data.image_id,
            x=data.x,
            y=data.y,
            radius=data.radius,
        )
    except SQLAlchemyError as e:
        logger.error(f"Database error saving annotation on image {data.image_id}: {e}")
        raise InternalError("Failed to save annotation")

    return AnnotationResponse.model_validate(annotation)


@router.get("/images/{image_id}/annotations", response_model=AnnotationListResponse)
async def get_annotations(
    _: GeneralLimitDep,
    image_id: int,
    session: SessionDep,
    client_key: ClientKeyDep,
    share_token: ShareTokenQuery = None,
) -> AnnotationListResponse:
    await require_image_access(session, image_id, client_key, share_token, _annotation_policy())

    annotations = await list_annotations_for_image(session, image_id)
    return AnnotationListResponse(
        annotations=[AnnotationResponse.model_validate(a) for a in annotations]
    )


@router.post(
    "/annotations/{annotation_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_message(
    _: ChatLimitDep,
    annotation_id: int,
    data: CreateMessageRequest,
    session: SessionDep,
    client_key: ClientKeyDep,
) -> MessageResponse:
    """Append a chat message to an annotation's thread.

    The message is validated before any lookup or write; the trimmed text is
    what gets stored.
    """
    text = normalize_message(data.message, settings.chat_message_max_length)

    await require_annotation_access(
        session, annotation_id, client_key, data.share_token, _annotation_policy()
    )

    try:
        chat_message = await create_chat_message(session, annotation_id, text)
    except SQLAlchemyError as e:
        logger.error(f"Database error saving message on annotation {annotation_id}: {e}")
        raise InternalError("Failed to save message")

    return MessageResponse.model_validate(chat_message)


@router.get("/annotations/{annotation_id}/messages", response_model=MessageListResponse)
async def get_messages(
    _: GeneralLimitDep,
    annotation_id: int,
    session: SessionDep,
    client_key: ClientKeyDep,
    share_token: ShareTokenQuery = None,
) -> MessageListResponse:
    await require_annotation_access(
        session, annotation_id, client_key, share_token, _annotation_policy()
    )

    messages = await list_chat_messages(session, annotation_id)
    return MessageListResponse(
        messages=[MessageResponse.model_validate(m) for m in messages]
    )
