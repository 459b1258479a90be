"""Speech-to-text proxy for voice input."""

import logging

from openai import AsyncOpenAI

from askuni.agent.config import AgentConfig

logger = logging.getLogger(__name__)


class SpeechService:
    """Transcribes recorded audio with the configured STT model."""

    def __init__(self, config: AgentConfig) -> None:
        self._config = config
        self._client = AsyncOpenAI(api_key=config.api_key, base_url=config.base_url)

    async def transcribe(self, audio: bytes, filename: str = "speech.webm") -> str:
        """Transcribe audio bytes to text (language auto-detected).

        Args:
            audio: Raw audio recording.
            filename: Name hinting the container format to the API.

        Returns:
            The transcription, stripped.
        """
        result = await self._client.audio.transcriptions.create(
            file=(filename, audio),
            model=self._config.stt_model,
        )
        text = str(getattr(result, "text", "") or "").strip()
        logger.info(f"Transcribed {len(audio)} bytes of audio into {len(text)} characters")
        return text
