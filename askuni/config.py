"""Streaming and authentication settings loaded from the environment."""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


class StreamConfig(BaseModel):
    """Timing bounds for streaming and blocking generations.

    Attributes:
        keepalive_interval: Seconds between keep-alive markers while idle.
        max_idle_intervals: Consecutive idle intervals before a stream fails.
        poll_interval: Seconds between completion checks on the blocking path.
        max_poll_attempts: Completion checks before the blocking path times out.
    """

    keepalive_interval: float = Field(
        default_factory=lambda: _env_float("ASKUNI_KEEPALIVE_SECONDS", 15.0),
        gt=0.0,
    )
    max_idle_intervals: int = Field(
        default_factory=lambda: _env_int("ASKUNI_MAX_IDLE_INTERVALS", 40),
        ge=1,
    )
    poll_interval: float = Field(
        default_factory=lambda: _env_float("ASKUNI_POLL_INTERVAL", 0.7),
        gt=0.0,
    )
    max_poll_attempts: int = Field(
        default_factory=lambda: _env_int("ASKUNI_MAX_POLL_ATTEMPTS", 600),
        ge=1,
    )


class AuthConfig(BaseModel):
    """Bearer token verification settings."""

    jwt_secret: str = Field(
        default_factory=lambda: os.getenv("JWT_SECRET", "dev_secret_change_me"),
        min_length=1,
    )
    jwt_algorithm: str = "HS256"


def get_stream_config() -> StreamConfig:
    return StreamConfig()


def get_auth_config() -> AuthConfig:
    return AuthConfig()
