"""Agno agent service backing the assistant generation endpoints.

Architecture Decisions:

1. **SQLite Storage** - Each conversation thread is an Agno session stored in
   SQLite, so multi-turn context survives restarts without the client
   resending history. Guests get a fresh thread per request.

2. **LanceDB Knowledge Base** - Official course documents are ingested into a
   local LanceDB table. The agent searches it for every question (agentic RAG).

3. **Citation Counting** - Answers are only trusted when a knowledge search
   actually returned documents. The service reports how many such results it
   saw; the stream producer decides what to do with an ungrounded answer.

4. **Typed Failures** - Upstream errors surface as GenerationError instead of
   being folded into the answer text, so the producer can emit a proper
   error frame.
"""

import logging
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

from agno.agent import Agent
from agno.db.sqlite import SqliteDb
from agno.knowledge.knowledge import Knowledge
from agno.models.openai import OpenAIChat
from agno.vectordb.lancedb import LanceDb

from askuni.agent.backend import Generation, TextIncrement, bounded_wait
from askuni.agent.config import AgentConfig, get_agent_config
from askuni.agent.guardrails import build_instructions
from askuni.config import StreamConfig, get_stream_config
from askuni.exceptions import GenerationError, GenerationTimeoutError

logger = logging.getLogger(__name__)

# Store sessions and knowledge in project data directory
_DATA_DIR = Path(__file__).parent.parent.parent / "data"
_SESSIONS_DB = _DATA_DIR / "sessions.db"
_KNOWLEDGE_DIR = _DATA_DIR / "knowledge"

KNOWLEDGE_TOOL_NAMES = frozenset({"search_knowledge_base"})
_EMPTY_SEARCH_RESULT = "No documents found"

# Agno run event names
_CONTENT_EVENT = "RunContent"


def count_citations(item: Any) -> int:
    """Count knowledge base results attached to an Agno run output or event.

    Looks at knowledge search tool executions (``tool`` on tool events,
    ``tools`` on run outputs) and at explicit ``references``.
    """
    tool = getattr(item, "tool", None)
    tools = [tool] if tool is not None else list(getattr(item, "tools", None) or [])

    count = 0
    for execution in tools:
        if getattr(execution, "tool_name", None) not in KNOWLEDGE_TOOL_NAMES:
            continue
        if getattr(execution, "tool_call_error", False):
            continue
        result = getattr(execution, "result", None)
        if result and not str(result).startswith(_EMPTY_SEARCH_RESULT):
            count += 1

    for reference in getattr(item, "references", None) or []:
        count += len(getattr(reference, "references", None) or [])

    return count


class AgentService:
    """Service for managing the Agno assistant.

    Wraps Agno's Agent with:
    - Persistent SQLite storage for conversation threads
    - LanceDB knowledge base for grounded answers
    - Streaming and bounded blocking generation
    - Centralized error handling
    """

    def __init__(
        self,
        config: AgentConfig | None = None,
        stream_config: StreamConfig | None = None,
    ) -> None:
        """Initialize the agent service.

        Args:
            config: Optional agent configuration.
                    Loads from environment if not provided.
            stream_config: Optional timing bounds for blocking generations.
        """
        self._config = config or get_agent_config()
        self._stream_config = stream_config or get_stream_config()
        self._storage = self._create_storage()
        self._knowledge = self._create_knowledge()
        self._agent = self._create_agent()

    @property
    def config(self) -> AgentConfig:
        return self._config

    def _create_storage(self) -> SqliteDb:
        _DATA_DIR.mkdir(parents=True, exist_ok=True)
        return SqliteDb(
            db_file=str(_SESSIONS_DB),
            session_table="assistant_threads",
        )

    def _create_knowledge(self) -> Knowledge:
        _KNOWLEDGE_DIR.mkdir(parents=True, exist_ok=True)

        vector_db = LanceDb(
            uri=str(_KNOWLEDGE_DIR),
            table_name="course_documents",
        )

        return Knowledge(vector_db=vector_db)

    def _create_agent(self) -> Agent:
        """Create the Agno agent instance.

        Returns:
            Configured Agent with OpenAI model, SQLite storage, and knowledge base.
        """
        model = OpenAIChat(
            id=self._config.model_name,
            api_key=self._config.api_key,
            base_url=self._config.base_url,
            temperature=self._config.temperature,
            max_tokens=self._config.max_tokens,
        )

        return Agent(
            model=model,
            db=self._storage,
            knowledge=self._knowledge,
            description=(
                f"AskUni, the course assistant for {self._config.tenant_name}. "
                "Answers strictly from the official documents in the knowledge base."
            ),
            instructions=build_instructions(self._config.tenant_name),
            # Thread history: last 20 messages (~10 turns) of the same thread
            add_history_to_context=True,
            num_history_messages=20,
            # Agentic RAG - the agent calls search_knowledge_base itself
            search_knowledge=True,
            markdown=True,
        )

    async def add_document(
        self,
        content: str,
        name: str,
        metadata: dict[str, str | None] | None = None,
    ) -> None:
        """Add a document to the knowledge base.

        Args:
            content: The text content of the document.
            name: Document name/identifier (e.g., filename).
            metadata: Optional metadata (author, title, etc.).
        """
        if not content.strip():
            logger.warning(f"Skipping empty document: {name}")
            return

        doc_metadata = {k: v for k, v in (metadata or {}).items() if v is not None}

        await self._knowledge.add_content_async(
            name=name,
            text_content=content,
            metadata=doc_metadata or None,
        )
        logger.info(f"Added document to knowledge base: {name}")

    async def stream_generate(self, thread_id: str, prompt: str) -> AsyncIterator[TextIncrement]:
        """Stream a generation on a thread.

        Args:
            thread_id: Agno session holding the conversation.
            prompt: Unified prompt (attachments + user message).

        Yields:
            Text increments, and citation-only increments for knowledge searches.

        Raises:
            GenerationError: If the upstream model call fails.
        """
        try:
            response_stream = self._agent.arun(
                prompt,
                session_id=thread_id,
                stream=True,
                stream_events=True,
            )

            async for event in response_stream:
                citations = count_citations(event)
                content = getattr(event, "content", None)
                text = content if getattr(event, "event", None) == _CONTENT_EVENT else None
                if isinstance(text, str) and text:
                    yield TextIncrement(text=text, citations=citations)
                elif citations:
                    yield TextIncrement(citations=citations)

        except GenerationError:
            raise
        except Exception as e:
            logger.error(f"Streaming generation failed on {thread_id}: {e}")
            raise GenerationError(str(e) or "Stream error") from e

    async def blocking_generate(self, thread_id: str, prompt: str) -> Generation:
        """Run a generation to completion with a bounded wait.

        Raises:
            GenerationTimeoutError: If the run does not finish in time.
            GenerationError: If the upstream model call fails.
        """
        try:
            response = await bounded_wait(
                self._agent.arun(prompt, session_id=thread_id),
                interval=self._stream_config.poll_interval,
                max_attempts=self._stream_config.max_poll_attempts,
            )
        except GenerationTimeoutError:
            raise
        except Exception as e:
            logger.error(f"Blocking generation failed on {thread_id}: {e}")
            raise GenerationError(str(e) or "Assistant error") from e

        return Generation(text=response.content or "", citations=count_citations(response))


# Module-level singleton instance
_agent_service: AgentService | None = None


def get_agent_service() -> AgentService:
    """Get or create the global agent service.

    Raises:
        ValueError: If no API key is configured.
    """
    global _agent_service
    if _agent_service is None:
        _agent_service = AgentService()
    return _agent_service
