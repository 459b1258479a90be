"""FastAPI endpoints for AskUni.

Endpoints:
    - GET /health: Service health status
    - POST /message/stream: Streaming chat (server-sent events)
    - POST /message: Blocking chat fallback
    - POST /upload: Chat attachment upload
    - POST /knowledge/pdf: Knowledge base ingestion
    - POST /stt: Speech-to-text
    - GET|DELETE /chats: Chat history
"""

from askuni.api.app import app, create_app

__all__ = ["app", "create_app"]
