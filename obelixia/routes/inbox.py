"""Omnichannel inbox routes."""

from fastapi import APIRouter, HTTPException, Query, Request, status

from .. import database, notices
from ..auth import CurrentUser
from ..config import get_settings
from ..database import Database
from ..logging_config import get_logger
from ..models import (
    AssignRequest,
    Conversation,
    ConversationListResponse,
    ConversationMutationResponse,
    Message,
    MessageListResponse,
    SendMessageRequest,
    SendMessageResponse,
    StatusUpdateRequest,
    TagRequest,
)
from ..rate_limit import WRITE_RATE_LIMIT, limiter
from ..remote import RemoteCallError, RemoteFunctionClient
from ..services import inbox as inbox_service

logger = get_logger("obelixia.inbox")
router = APIRouter(prefix="/inbox", tags=["inbox"])

SEND_ACTION = "send_message"


async def _load_conversation(db, conversation_id: str, organization_id: str | None) -> dict:
    conversation = await database.get_conversation(db, conversation_id, organization_id)
    if not conversation:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    return conversation


async def _update(db, conversation: dict, fields: dict) -> dict:
    updated = await database.update_conversation(db, conversation["id"], fields)
    return updated or {**conversation, **fields}


def _conversation(row: dict) -> Conversation:
    return Conversation(**{**row, "sla_status": inbox_service.sla_status(row.get("sla_deadline"))})


@router.get("/conversations", response_model=ConversationListResponse)
async def list_conversations(
    user: CurrentUser,
    db: Database,
    search: str = "",
    channel: str = Query(inbox_service.ALL),
    conversation_status: str = Query("open", alias="status"),
):
    rows = await database.list_conversations(db, user.organization_id)
    filtered = inbox_service.annotate_sla(
        inbox_service.filter_conversations(rows, search, channel, conversation_status)
    )
    return ConversationListResponse(
        conversations=[Conversation(**c) for c in filtered],
        total=len(filtered),
    )


@router.get("/conversations/{conversation_id}/messages", response_model=MessageListResponse)
async def list_messages(conversation_id: str, user: CurrentUser, db: Database):
    await _load_conversation(db, conversation_id, user.organization_id)
    rows = await database.list_messages(db, conversation_id)
    return MessageListResponse(messages=[Message(**m) for m in rows])


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=SendMessageResponse,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(WRITE_RATE_LIMIT)
async def send_message(
    request: Request,
    conversation_id: str,
    body: SendMessageRequest,
    user: CurrentUser,
    db: Database,
):
    """Send an agent reply.

    The message is stored with status ``sent`` and shown as the
    conversation's last message before the channel transport runs. If the
    transport fails the message is marked ``failed`` and an error notice is
    returned instead of failing the request.
    """
    conversation = await _load_conversation(db, conversation_id, user.organization_id)

    row = inbox_service.new_outgoing_message(conversation_id, body.content, user.user_id)
    stored = await database.insert_message(db, row) or row
    await database.update_conversation(
        db, conversation_id, {"last_message": inbox_service.last_message_summary(stored)}
    )

    contact = conversation.get("contact") or {}
    client = RemoteFunctionClient(db, tenant=user.tenant_key)
    try:
        await client.invoke(
            get_settings().messaging_function,
            SEND_ACTION,
            phone=contact.get("phone"),
            message=stored["content"],
            conversationId=conversation_id,
        )
    except RemoteCallError as e:
        logger.error(f"SEND FAILED | {conversation_id} | {stored['id']}: {e.message}")
        await database.update_message_status(db, stored["id"], "failed")
        stored = {**stored, "status": "failed"}
        return SendMessageResponse(message=Message(**stored), notices=[notices.error(e.user_message())])

    return SendMessageResponse(message=Message(**stored))


@router.post("/conversations/{conversation_id}/assign", response_model=ConversationMutationResponse)
async def assign_conversation(conversation_id: str, body: AssignRequest, user: CurrentUser, db: Database):
    conversation = await _load_conversation(db, conversation_id, user.organization_id)
    updated = await _update(db, conversation, {"assignee_id": body.assignee_id})
    logger.info(f"ASSIGN | {conversation_id} -> {body.assignee_id} by {user.user_id}")
    return ConversationMutationResponse(
        conversation=_conversation(updated),
        notices=[notices.success("Conversation assigned")],
    )


@router.post("/conversations/{conversation_id}/status", response_model=ConversationMutationResponse)
async def update_status(conversation_id: str, body: StatusUpdateRequest, user: CurrentUser, db: Database):
    conversation = await _load_conversation(db, conversation_id, user.organization_id)
    updated = await _update(db, conversation, {"status": body.status})
    return ConversationMutationResponse(
        conversation=_conversation(updated),
        notices=[notices.success(f"Conversation marked {body.status}")],
    )


@router.post("/conversations/{conversation_id}/tags", response_model=ConversationMutationResponse)
async def add_tag(conversation_id: str, body: TagRequest, user: CurrentUser, db: Database):
    conversation = await _load_conversation(db, conversation_id, user.organization_id)
    tags = inbox_service.add_tag(conversation.get("tags"), body.tag)
    if tags == (conversation.get("tags") or []):
        return ConversationMutationResponse(conversation=_conversation(conversation))

    updated = await _update(db, conversation, {"tags": tags})
    return ConversationMutationResponse(
        conversation=_conversation(updated),
        notices=[notices.success(f"Tag {body.tag.strip()} added")],
    )
