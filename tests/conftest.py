"""テスト共通のフィクスチャとフェイククライアント。"""

from __future__ import annotations

from typing import Dict, List

import pytest
from fastapi.testclient import TestClient

from chat_relay.config import Config
from chat_relay.db import init_db
from chat_relay.main import create_app
from chat_relay.relay import RelayService


class FakeChatPlatform:
    """ChatPlatformClient の代役（呼び出しを記録する）。"""

    def __init__(self) -> None:
        self.users: Dict[str, dict] = {}
        self.sent: List[tuple] = []
        self.calls: List[tuple] = []
        self.fail_send = False

    def user_exists(self, user_id: str) -> bool:
        self.calls.append(("user_exists", user_id))
        return user_id in self.users

    def upsert_user(self, user_id: str, name: str, email: str, *, role: str = "user") -> None:
        self.calls.append(("upsert_user", user_id))
        self.users[user_id] = {"id": user_id, "name": name, "email": email, "role": role}

    def ensure_bot_user(self) -> None:
        self.calls.append(("ensure_bot_user",))

    def send_reply(self, user_id: str, text: str) -> None:
        self.calls.append(("send_reply", user_id))
        if self.fail_send:
            raise RuntimeError("stream unavailable")
        self.sent.append((f"chat-{user_id}", text))


class FakeCompletionClient:
    """CompletionClient の代役（受け取ったメッセージ列を記録する）。"""

    def __init__(self, reply: str = "Hello from the model") -> None:
        self.reply = reply
        self.requests: List[List[dict]] = []
        self.error: Exception | None = None

    def generate_reply(self, messages):
        self.requests.append(list(messages))
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def config() -> Config:
    return Config(
        stream_api_key="stream-key",
        stream_api_secret="stream-secret",
        openrouter_api_key="or-key",
        database_url="sqlite://",
    )


@pytest.fixture
def session_factory():
    return init_db("sqlite://")


@pytest.fixture
def platform() -> FakeChatPlatform:
    return FakeChatPlatform()


@pytest.fixture
def completion() -> FakeCompletionClient:
    return FakeCompletionClient()


@pytest.fixture
def relay(session_factory, platform, completion) -> RelayService:
    return RelayService(session_factory, platform, completion, history_limit=10)


@pytest.fixture
def client(config, session_factory, platform, completion):
    app = create_app(
        config,
        session_factory=session_factory,
        chat_platform=platform,
        completion_client=completion,
    )
    with TestClient(app) as c:
        yield c
