# voicetutor/models/user.py
"""
Database model for learners.
Holds the profile the conversation flow needs: which language the learner
practises, their native language and their CEFR level.
"""
import uuid
from tortoise import fields, models


class User(models.Model):
    """
    User database model.

    Relationships:
    - Has many Conversations (one-to-many, via related_name="conversations")

    A user whose target_language or cefr_level is null has not finished
    onboarding and cannot start a conversation.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    email = fields.CharField(max_length=256, unique=True, index=True)
    target_language = fields.CharField(max_length=32, null=True)  # e.g. "spanish"
    native_language = fields.CharField(max_length=32, default="english")
    cefr_level = fields.CharField(max_length=2, null=True)  # A1 .. C2
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "users"
