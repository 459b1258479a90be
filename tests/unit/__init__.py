"""Unit tests for individual components in isolation.

Coverage:
    - streaming/: frame codec, producer, consumer, fallback coordinator
    - agent/: configuration, Agno event handling, bounded waits, guardrails
    - history/, auth: session store and bearer tokens
    - parsing/: attachment and PDF extraction

Uses mocks for Agno and OpenAI, and httpx.MockTransport for the server
side of the client tests.
"""
