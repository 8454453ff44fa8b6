# voicetutor/models/message.py
from tortoise import fields, models


class ConversationMessage(models.Model):
    id = fields.IntField(primary_key=True)
    conversation = fields.ForeignKeyField(
        "models.Conversation", related_name="messages", on_delete=fields.CASCADE
    )

    seq = fields.IntField()  # position within the conversation, 0-based
    message_id = fields.CharField(max_length=64)
    role = fields.CharField(max_length=16)  # "user" / "assistant"
    content = fields.TextField()
    created_at = fields.DatetimeField()

    class Meta:
        table = "conversation_messages"
        ordering = ["seq"]
