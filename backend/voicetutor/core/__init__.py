# voicetutor/core/__init__.py
"""
Core modules.
Contains infrastructure shared by the services:
- bootstrap: Composition root wiring the conversation flow
- db: Tortoise ORM configuration and connection management
- errors: Unified conversation error taxonomy
- logging: Log handler setup
- security: JWT access token helpers
"""
