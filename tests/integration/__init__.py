"""Integration tests for components working together as a system.

Coverage:
    - Chat endpoints with real HTTP requests over ASGI
    - Signed-in history persistence and the /chats endpoints
    - Uploads, knowledge base ingestion and speech-to-text
    - The fallback coordinator talking to the real app

The assistant backend is scripted, so no API keys are required.
"""
