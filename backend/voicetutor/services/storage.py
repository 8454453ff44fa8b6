"""
Conversation Persistence Gateway

Stores tutoring sessions and their turns through Tortoise ORM.

Every call returns a ``StorageResult`` (or ``ConversationHistoryResult``)
instead of raising: persistence is best-effort from the conversation flow's
point of view, so failures are reported as values and logged here.
"""
import logging
import uuid
from typing import List, Optional

from tortoise.exceptions import BaseORMException
from tortoise.transactions import in_transaction

from ..config import settings
from ..models import Conversation, ConversationMessage
from ..schemas.conversation import (
    ConversationHistoryFilter,
    ConversationHistoryResult,
    ConversationSession,
    Message,
    MessageRole,
    StorageResult,
    utcnow,
)

logger = logging.getLogger(__name__)

# ValueError covers malformed UUIDs
STORAGE_ERRORS = (BaseORMException, ValueError, OSError)

DISABLED_MESSAGE = "Conversation persistence is disabled"


def _message_rows(conversation_id, messages: List[Message], start_seq: int) -> List[ConversationMessage]:
    return [
        ConversationMessage(
            conversation_id=conversation_id,
            seq=start_seq + offset,
            message_id=message.id,
            role=message.role.value,
            content=message.content,
            created_at=message.created_at,
        )
        for offset, message in enumerate(messages)
    ]


class ConversationStorageService:
    """Tortoise-backed conversation store."""

    def __init__(self, enabled: Optional[bool] = None):
        self.enabled = settings.enable_persistence if enabled is None else enabled

    def create_new_session(self, user_id: str, language: str, cefr_level: str) -> ConversationSession:
        """Build a new, not yet saved session with fresh ids."""
        now = utcnow()
        return ConversationSession(
            id=str(uuid.uuid4()),
            user_id=user_id,
            session_id=str(uuid.uuid4()),
            language=language,
            cefr_level=cefr_level,
            messages=[],
            created_at=now,
            updated_at=now,
        )

    async def _to_session(self, conversation: Conversation) -> ConversationSession:
        rows = await ConversationMessage.filter(conversation_id=conversation.id).order_by("seq")
        return ConversationSession(
            id=str(conversation.id),
            user_id=str(conversation.user_id),
            session_id=conversation.session_id,
            language=conversation.language,
            cefr_level=conversation.cefr_level,
            messages=[
                Message(id=row.message_id, role=MessageRole(row.role), content=row.content,
                        created_at=row.created_at)
                for row in rows
            ],
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
        )

    async def save_conversation(self, session: ConversationSession) -> StorageResult:
        """Insert the session row and any messages it already holds."""
        if not self.enabled:
            return StorageResult(success=False, error=DISABLED_MESSAGE)
        try:
            async with in_transaction():
                conversation = await Conversation.create(
                    id=session.id,
                    user_id=session.user_id,
                    session_id=session.session_id,
                    language=session.language,
                    cefr_level=session.cefr_level,
                )
                if session.messages:
                    await ConversationMessage.bulk_create(_message_rows(conversation.id, session.messages, 0))
            logger.info(f"[Storage] Saved conversation {conversation.id}")
            return StorageResult(success=True, data=await self._to_session(conversation))
        except STORAGE_ERRORS as e:
            logger.warning(f"[Storage] Failed to save conversation: {e}")
            return StorageResult(success=False, error=f"Failed to save conversation: {e}")

    async def append_messages(self, conversation_id: str, messages: List[Message]) -> StorageResult:
        """Append messages after the ones already stored, bumping updated_at."""
        if not self.enabled:
            return StorageResult(success=False, error=DISABLED_MESSAGE)
        try:
            async with in_transaction():
                conversation = await Conversation.get_or_none(id=conversation_id)
                if conversation is None:
                    return StorageResult(success=False, error=f"Conversation not found: {conversation_id}")
                next_seq = await ConversationMessage.filter(conversation_id=conversation.id).count()
                if messages:
                    await ConversationMessage.bulk_create(_message_rows(conversation.id, messages, next_seq))
                await conversation.save(update_fields=["updated_at"])
            return StorageResult(success=True, data=await self._to_session(conversation))
        except STORAGE_ERRORS as e:
            logger.warning(f"[Storage] Failed to append to conversation {conversation_id}: {e}")
            return StorageResult(success=False, error=f"Failed to append messages: {e}")

    async def update_conversation(self, conversation_id: str, messages: List[Message]) -> StorageResult:
        """Replace the stored messages of a conversation."""
        if not self.enabled:
            return StorageResult(success=False, error=DISABLED_MESSAGE)
        try:
            async with in_transaction():
                conversation = await Conversation.get_or_none(id=conversation_id)
                if conversation is None:
                    return StorageResult(success=False, error=f"Conversation not found: {conversation_id}")
                await ConversationMessage.filter(conversation_id=conversation.id).delete()
                if messages:
                    await ConversationMessage.bulk_create(_message_rows(conversation.id, messages, 0))
                await conversation.save(update_fields=["updated_at"])
            return StorageResult(success=True, data=await self._to_session(conversation))
        except STORAGE_ERRORS as e:
            logger.warning(f"[Storage] Failed to update conversation {conversation_id}: {e}")
            return StorageResult(success=False, error=f"Failed to update conversation: {e}")

    async def get_conversation_by_id(self, conversation_id: str) -> StorageResult:
        if not self.enabled:
            return StorageResult(success=False, error=DISABLED_MESSAGE)
        try:
            conversation = await Conversation.get_or_none(id=conversation_id)
            if conversation is None:
                return StorageResult(success=False, error=f"Conversation not found: {conversation_id}")
            return StorageResult(success=True, data=await self._to_session(conversation))
        except STORAGE_ERRORS as e:
            logger.warning(f"[Storage] Failed to get conversation {conversation_id}: {e}")
            return StorageResult(success=False, error=f"Failed to get conversation: {e}")

    async def get_conversation_history(self, filter: ConversationHistoryFilter) -> ConversationHistoryResult:
        """
        Conversations matching the filter, newest first.

        ``total_count`` counts every match, ignoring limit/offset.
        """
        if not self.enabled:
            return ConversationHistoryResult(success=True, data=[], total_count=0)
        try:
            query = Conversation.all()
            if filter.user_id:
                query = query.filter(user_id=filter.user_id)
            if filter.language:
                query = query.filter(language=filter.language)
            if filter.cefr_level:
                query = query.filter(cefr_level=filter.cefr_level)
            if filter.date_from:
                query = query.filter(created_at__gte=filter.date_from)
            if filter.date_to:
                query = query.filter(created_at__lte=filter.date_to)

            total = await query.count()
            rows = await query.order_by("-created_at").offset(filter.offset).limit(filter.limit)
            sessions = [await self._to_session(row) for row in rows]
            return ConversationHistoryResult(success=True, data=sessions, total_count=total)
        except STORAGE_ERRORS as e:
            logger.warning(f"[Storage] Failed to get conversation history: {e}")
            return ConversationHistoryResult(success=False, error=f"Failed to get conversation history: {e}")

    async def delete_conversation(self, conversation_id: str) -> StorageResult:
        """Delete a conversation and its messages."""
        if not self.enabled:
            return StorageResult(success=False, error=DISABLED_MESSAGE)
        try:
            conversation = await Conversation.get_or_none(id=conversation_id)
            if conversation is None:
                return StorageResult(success=False, error=f"Conversation not found: {conversation_id}")
            await ConversationMessage.filter(conversation_id=conversation.id).delete()
            await conversation.delete()
            logger.info(f"[Storage] Deleted conversation {conversation_id}")
            return StorageResult(success=True)
        except STORAGE_ERRORS as e:
            logger.warning(f"[Storage] Failed to delete conversation {conversation_id}: {e}")
            return StorageResult(success=False, error=f"Failed to delete conversation: {e}")
