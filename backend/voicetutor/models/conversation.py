# voicetutor/models/conversation.py
"""
Database model for conversations.
One row per tutoring session; the turns live in ConversationMessage.
"""
import uuid
from tortoise import fields, models


class Conversation(models.Model):
    """
    Conversation database model.

    Relationships:
    - Belongs to a User (many-to-one)
    - Has many ConversationMessages (one-to-many, via related_name="messages")
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    user = fields.ForeignKeyField(
        "models.User",
        related_name="conversations",
        on_delete=fields.CASCADE,
    )  # cascade: deleting a user deletes their conversations
    session_id = fields.CharField(max_length=64, index=True)  # client-side session id
    language = fields.CharField(max_length=32)
    cefr_level = fields.CharField(max_length=2)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "conversations"
