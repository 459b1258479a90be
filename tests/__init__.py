"""Test package for AskUni.

Unit tests cover the stream codec, producer, consumer and fallback
coordinator in isolation; integration tests drive the FastAPI app over
ASGI with a scripted assistant backend.

Structure:
    - unit/: Individual function and class tests
    - integration/: HTTP endpoint and client-against-app tests
    - fakes.py: Scripted backend, failing history, recording display, PDF builder

Leverages pytest with pytest-check for soft assertions.
"""
