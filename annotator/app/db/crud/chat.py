"""Chat message CRUD operations."""
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from annotator.app.db.models import ChatMessage


async def create_chat_message(
    session: AsyncSession,
    annotation_id: int,
    message: str,
    auto_commit: bool = True
) -> ChatMessage:
    chat_message = ChatMessage(annotation_id=annotation_id, message=message)
    session.add(chat_message)
    if auto_commit:
        await session.commit()
        await session.refresh(chat_message)
    else:
        await session.flush()
    return chat_message


async def list_chat_messages(
    session: AsyncSession,
    annotation_id: int
) -> List[ChatMessage]:
    """List an annotation's messages, oldest first."""
    result = await session.execute(
        select(ChatMessage)
        .where(ChatMessage.annotation_id == annotation_id)
        .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
    )
    return list(result.scalars().all())
