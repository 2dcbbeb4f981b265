"""RelayService の処理順序・失敗種別のテスト。"""

from __future__ import annotations

from datetime import datetime, timedelta
from types import SimpleNamespace

import litellm
import pytest

from chat_relay.db import session_scope
from chat_relay.errors import FailureKind, RelayError
from chat_relay.llm_client import FALLBACK_REPLY, CompletionClient
from chat_relay.models import Chat, User
from chat_relay.relay import RelayService, build_prompt, derive_user_id


@pytest.mark.parametrize(
    ("email", "expected"),
    [
        ("ann@x.com", "ann_x_com"),
        ("first.last+tag@mail.example.org", "first_last_tag_mail_example_org"),
        ("under_score-dash@x.io", "under_score-dash_x_io"),
        ("ÄBC@x.com", "_BC_x_com"),
    ],
)
def test_derive_user_id(email, expected):
    assert derive_user_id(email) == expected
    assert derive_user_id(email) == derive_user_id(email)


def test_build_prompt_flattens_turns_in_order():
    history = [
        SimpleNamespace(message="q1", reply="a1"),
        SimpleNamespace(message="q2", reply="a2"),
    ]
    assert build_prompt(history, "q3") == [
        {"role": "user", "content": "q1"},
        {"role": "assistant", "content": "a1"},
        {"role": "user", "content": "q2"},
        {"role": "assistant", "content": "a2"},
        {"role": "user", "content": "q3"},
    ]


def test_validation_failure_kind(relay, platform):
    with pytest.raises(RelayError) as excinfo:
        relay.chat(None, "hi")
    assert excinfo.value.kind is FailureKind.VALIDATION
    assert excinfo.value.status_code == 400
    assert platform.calls == []


def test_register_twice_is_idempotent(relay, platform, session_factory):
    first = relay.register_user("Ann", "ann@x.com")
    second = relay.register_user("Ann", "ann@x.com")

    assert first == second
    assert list(platform.users) == ["ann_x_com"]
    # 2回目も両ストアの存在確認は行う
    assert platform.calls.count(("user_exists", "ann_x_com")) == 2
    assert platform.calls.count(("upsert_user", "ann_x_com")) == 1
    with session_scope(session_factory) as db:
        assert db.query(User).filter(User.user_id == "ann_x_com").count() == 1


def test_register_storage_failure_leaves_platform_user(relay, platform, monkeypatch):
    from chat_relay import repo

    def broken_create_user(db, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(repo, "create_user", broken_create_user)

    with pytest.raises(RelayError) as excinfo:
        relay.register_user("Ann", "ann@x.com")
    assert excinfo.value.kind is FailureKind.UPSTREAM
    assert excinfo.value.message == "Internal server error"
    # 補償はしない
    assert "ann_x_com" in platform.users


def test_chat_unregistered_user_is_not_found(relay, completion, session_factory):
    with pytest.raises(RelayError) as excinfo:
        relay.chat("ghost", "hi")
    assert excinfo.value.kind is FailureKind.NOT_FOUND
    assert completion.requests == []
    with session_scope(session_factory) as db:
        assert db.query(Chat).count() == 0


def test_chat_uses_ten_most_recent_turns_ascending(relay, completion, session_factory):
    relay.register_user("Ann", "ann@x.com")
    base = datetime(2024, 1, 1, 9, 0, 0)
    with session_scope(session_factory) as db:
        for i in range(12):
            db.add(
                Chat(
                    user_id="ann_x_com",
                    message=f"q{i}",
                    reply=f"a{i}",
                    created_at=base + timedelta(minutes=i),
                )
            )

    relay.chat("ann_x_com", "latest")

    sent = completion.requests[0]
    assert len(sent) == 21
    assert sent[0] == {"role": "user", "content": "q2"}
    assert sent[1] == {"role": "assistant", "content": "a2"}
    assert sent[-3] == {"role": "user", "content": "q11"}
    assert sent[-1] == {"role": "user", "content": "latest"}
    assert [m["content"] for m in sent[0:20:2]] == [f"q{i}" for i in range(2, 12)]


def test_chat_history_limit_is_configurable(session_factory, platform, completion):
    relay = RelayService(session_factory, platform, completion, history_limit=2)
    relay.register_user("Ann", "ann@x.com")
    for i in range(3):
        relay.chat("ann_x_com", f"m{i}")

    last = completion.requests[-1]
    assert [m["content"] for m in last] == ["m0", completion.reply, "m1", completion.reply, "m2"]


def test_fallback_reply_is_persisted_and_mirrored(session_factory, platform, monkeypatch):
    monkeypatch.setattr(litellm, "completion", lambda **kwargs: {"choices": []})
    relay = RelayService(session_factory, platform, CompletionClient("openrouter/test-model", "key"))
    relay.register_user("Ann", "ann@x.com")

    result = relay.chat("ann_x_com", "hi")

    assert result.reply == FALLBACK_REPLY
    with session_scope(session_factory) as db:
        assert [c.reply for c in db.query(Chat).all()] == [FALLBACK_REPLY]
    assert platform.sent == [("chat-ann_x_com", FALLBACK_REPLY)]


def test_mirror_failure_keeps_persisted_turn(relay, platform, session_factory):
    relay.register_user("Ann", "ann@x.com")
    platform.fail_send = True

    with pytest.raises(RelayError) as excinfo:
        relay.chat("ann_x_com", "hi")
    assert excinfo.value.kind is FailureKind.UPSTREAM
    assert excinfo.value.message == "stream unavailable"

    with session_scope(session_factory) as db:
        assert db.query(Chat).count() == 1


def test_completion_failure_persists_nothing(relay, completion, platform, session_factory):
    relay.register_user("Ann", "ann@x.com")
    completion.error = TimeoutError("upstream timed out")

    with pytest.raises(RelayError):
        relay.chat("ann_x_com", "hi")

    with session_scope(session_factory) as db:
        assert db.query(Chat).count() == 0
    assert platform.sent == []


def test_get_messages_only_returns_own_turns(relay, session_factory):
    with session_scope(session_factory) as db:
        db.add(Chat(user_id="a", message="1", reply="r"))
        db.add(Chat(user_id="b", message="2", reply="r"))

    result = relay.get_messages("a")
    assert [m.message for m in result.messages] == ["1"]
    assert result.messages[0].user_id == "a"
