"""Messaging endpoints."""

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from apps.api.deps import get_db, get_notifier, get_policy
from apps.engine.messaging import MessageService
from apps.workers.notifier import Notifier
from core.auth import current_user_id
from core.config import MatchPolicy
from models import Message

router = APIRouter(prefix="/messages", tags=["messages"])


class MessageIn(BaseModel):
    """Input model for sending a message."""

    match_id: int
    content: str = Field(min_length=1, max_length=2000)
    message_type: str = "text"  # text|image|voice


def message_payload(message: Message) -> dict[str, Any]:
    return {
        "id": message.id,
        "match_id": message.match_id,
        "sender_id": message.sender_id,
        "recipient_id": message.recipient_id,
        "content": message.content,
        "message_type": message.message_type,
        "is_read": message.is_read,
        "created_at": message.created_at.isoformat(),
    }


@router.post("")
async def send_message(
    body: MessageIn,
    background_tasks: BackgroundTasks,
    user_id: int = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
    policy: MatchPolicy = Depends(get_policy),
    notifier: Notifier = Depends(get_notifier),
) -> dict[str, Any]:
    outcome = await MessageService(db, policy).send(user_id, body.match_id, body.content, body.message_type)
    background_tasks.add_task(notifier.dispatch, outcome.events)
    return {"message": message_payload(outcome.message), "messages_remaining": outcome.messages_remaining}


@router.get("/conversations")
async def conversations(
    user_id: int = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
    policy: MatchPolicy = Depends(get_policy),
) -> dict[str, Any]:
    return {"conversations": await MessageService(db, policy).conversations(user_id)}


@router.get("/{match_id}")
async def message_history(
    match_id: int,
    limit: int = Query(50, ge=1, le=200),
    before_id: int | None = Query(None),
    user_id: int = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
    policy: MatchPolicy = Depends(get_policy),
) -> dict[str, Any]:
    """A page of messages (oldest first); marks the caller's received messages read."""
    messages = await MessageService(db, policy).history(user_id, match_id, limit=limit, before_id=before_id)
    return {"messages": [message_payload(m) for m in messages]}


@router.delete("/item/{message_id}")
async def delete_message(
    message_id: int,
    user_id: int = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
    policy: MatchPolicy = Depends(get_policy),
) -> dict[str, bool]:
    await MessageService(db, policy).delete(user_id, message_id)
    return {"ok": True}
