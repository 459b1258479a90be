"""AskUni - course assistant with streamed, knowledge-grounded answers.

Combines FastAPI for HTTP streaming, Agno for grounded generation,
NiceGUI for the chat interface, and Pydantic for data validation.

Components:
    - streaming: frame codec, stream producer, stream consumer, fallback coordinator
    - api: HTTP endpoints and event-stream responses
    - agent: LLM orchestration, knowledge base and speech-to-text
    - history: per-user sessions and conversation threads
    - parsing: attachment text extraction
    - ui: Web interface for chat interactions
    - models: Request/response schemas
"""

__version__ = "0.1.0"
