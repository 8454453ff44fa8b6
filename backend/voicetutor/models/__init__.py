# voicetutor/models/__init__.py
"""
Database models module initialization.
Exports all Tortoise ORM models so the rest of the package can import them
without knowing the file structure.

Models exported:
- User: Learner account and language profile
- Conversation: One persisted tutoring session
- ConversationMessage: A single turn within a conversation
"""
from .user import User
from .conversation import Conversation
from .message import ConversationMessage
