"""chat_relay package."""

__all__ = [
    "config",
    "db",
    "models",
    "repo",
    "schemas",
    "llm_client",
    "stream_client",
    "relay",
    "main",
]
