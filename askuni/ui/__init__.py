"""NiceGUI interface - thin visualization layer for chat interactions.

Responsibilities:
    - Live rendering of streamed answers through the stream consumer
    - Attachment upload and pending attachment chips
    - Chat history navigation for signed-in users

Contains minimal business logic. Sending goes through the fallback
coordinator, which talks to the API.
"""
