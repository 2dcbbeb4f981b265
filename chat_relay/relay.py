"""
リクエスト処理の本体（RelayService）

3つのエンドポイントの処理順序をここに集約する。
各ステップは前のステップの成功に依存し、途中で失敗したら残りは実行しない。

/chat の流れ:
1. チャット基盤にユーザーがいるか確認
2. DBにユーザーがいるか確認
3. 直近の会話ターンを取得（古い順）
4. 会話ターンを user/assistant のメッセージ列に展開し、新しい発話を末尾に追加
5. Completion API を1回呼ぶ（本文が無ければ固定文言）
6. 会話ターンを保存
7. chat-{userId} チャンネルへボットとして返信を転送

NOTE:
- チャット基盤とDBの2ストア間にトランザクションは無い。
  片方だけ成功した場合も補償・ロールバックはしない（6で保存済みの返信が7で転送失敗しても再送しない）。
- リトライは行わない。
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Sequence

from sqlalchemy.orm import sessionmaker

from chat_relay import repo, schemas
from chat_relay.db import session_scope
from chat_relay.errors import NotFound, RelayError, UpstreamFailure, ValidationFailure
from chat_relay.llm_client import CompletionClient
from chat_relay.models import Chat
from chat_relay.stream_client import ChatPlatformClient


logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 10
INTERNAL_ERROR_MESSAGE = "Internal server error"
CHAT_FIELDS_REQUIRED = "Message and userId are required"
REGISTER_FIELDS_REQUIRED = "Name and email are required"
USER_ID_REQUIRED = "userId is required"

_USER_ID_INVALID_CHARS_RE = re.compile(r"[^a-zA-Z0-9_-]")


def derive_user_id(email: str) -> str:
    """メールアドレスから userId を導出する（英数字・_・- 以外を _ に置換）。"""
    return _USER_ID_INVALID_CHARS_RE.sub("_", email)


def build_prompt(history: Sequence[Chat], message: str) -> List[Dict[str, str]]:
    """会話ターンを時系列のメッセージ列に展開し、新しい発話を末尾に追加する。"""
    messages: List[Dict[str, str]] = []
    for turn in history:
        messages.append({"role": "user", "content": turn.message})
        messages.append({"role": "assistant", "content": turn.reply})
    messages.append({"role": "user", "content": message})
    return messages


def _to_message_item(row: Chat) -> schemas.ChatMessage:
    return schemas.ChatMessage(
        id=int(row.id),
        user_id=str(row.user_id),
        message=str(row.message),
        reply=str(row.reply),
        created_at=row.created_at,
    )


class RelayService:
    """
    ユーザー登録・チャット・履歴取得の処理順序を管理する。

    DB / チャット基盤 / Completion API のハンドルは起動時に生成して注入する
    （テストではフェイクに差し替える）。
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        chat_platform: ChatPlatformClient,
        completion_client: CompletionClient,
        *,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self.session_factory = session_factory
        self.chat_platform = chat_platform
        self.completion_client = completion_client
        self.history_limit = int(history_limit)

    # --- /register-user ---

    def register_user(self, name: Optional[str], email: Optional[str]) -> schemas.RegisterUserResponse:
        """
        ユーザーを登録する。既に存在していても成功として同じ形で返す。

        チャット基盤とDBの存在確認・作成はそれぞれ独立して行う。
        """
        if not name or not email:
            raise ValidationFailure(REGISTER_FIELDS_REQUIRED)

        try:
            user_id = derive_user_id(email)

            # --- チャット基盤 ---
            if not self.chat_platform.user_exists(user_id):
                self.chat_platform.upsert_user(user_id, name, email, role="user")

            # --- DB ---
            with session_scope(self.session_factory) as db:
                if repo.get_user(db, user_id) is None:
                    repo.create_user(db, user_id=user_id, name=name, email=email)
                    logger.info("user stored user_id=%s", user_id)
        except Exception as exc:  # noqa: BLE001
            logger.exception("register-user failed email=%s", email)
            raise UpstreamFailure(INTERNAL_ERROR_MESSAGE) from exc

        return schemas.RegisterUserResponse(user_id=user_id, name=name, email=email)

    # --- /chat ---

    def chat(self, user_id: Optional[str], message: Optional[str]) -> schemas.ChatResponse:
        """1ターン分の会話を処理し、AIの返信を返す。"""
        if not message or not user_id:
            raise ValidationFailure(CHAT_FIELDS_REQUIRED)

        try:
            return self._chat(user_id, message)
        except RelayError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("chat failed user_id=%s", user_id)
            raise UpstreamFailure(str(exc) or INTERNAL_ERROR_MESSAGE) from exc

    def _chat(self, user_id: str, message: str) -> schemas.ChatResponse:
        # 1) チャット基盤
        if not self.chat_platform.user_exists(user_id):
            raise NotFound("User not found. Please register first.")

        # 2) DB + 3) 直近の履歴
        with session_scope(self.session_factory) as db:
            if repo.get_user(db, user_id) is None:
                raise NotFound("User not found in database. Please register first.")
            history = repo.recent_chats(db, user_id, limit=self.history_limit)
            # 4) メッセージ列（セッションを閉じる前に展開する）
            messages = build_prompt(history, message)

        logger.info("chat turn user_id=%s history_turns=%s", user_id, len(history))

        # 5) Completion API
        reply = self.completion_client.generate_reply(messages)

        # 6) 保存
        with session_scope(self.session_factory) as db:
            repo.add_chat(db, user_id=user_id, message=message, reply=reply)

        # 7) チャット基盤へ転送
        self.chat_platform.send_reply(user_id, reply)

        return schemas.ChatResponse(reply=reply)

    # --- /get-messages ---

    def get_messages(self, user_id: Optional[str]) -> schemas.MessagesResponse:
        """ユーザーの全会話ターンを返す。"""
        if not user_id:
            raise ValidationFailure(USER_ID_REQUIRED)

        try:
            with session_scope(self.session_factory) as db:
                items = [_to_message_item(row) for row in repo.list_chats(db, user_id)]
        except Exception as exc:  # noqa: BLE001
            logger.exception("get-messages failed user_id=%s", user_id)
            raise UpstreamFailure(str(exc) or INTERNAL_ERROR_MESSAGE) from exc

        return schemas.MessagesResponse(messages=items)
