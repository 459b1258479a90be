"""Agno agent logic for grounded answer generation.

Responsibilities:
    - Agent initialization with OpenAI models
    - Knowledge base ingestion and search for course documents
    - Conversation threads stored per session
    - Streaming and bounded blocking generation for the stream producer
    - Speech-to-text for voice input

Maintains clean separation from the HTTP layer.
"""

from askuni.agent.backend import AssistantBackend, Generation, TextIncrement, bounded_wait
from askuni.agent.chat_agent import AgentService, get_agent_service
from askuni.agent.config import AgentConfig, get_agent_config

__all__ = [
    "AgentConfig",
    "AgentService",
    "AssistantBackend",
    "Generation",
    "TextIncrement",
    "bounded_wait",
    "get_agent_config",
    "get_agent_service",
]
