"""
チャット基盤（Stream Chat）クライアント

stream-chat SDK の StreamChat をラップし、このサービスで使う操作だけを公開する。
- ユーザーの存在確認 / 登録
- AI応答のチャンネルへの転送（固定のボットIDで送信）
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from stream_chat import StreamChat


logger = logging.getLogger(__name__)

CHANNEL_TYPE = "messaging"


def channel_id_for(user_id: str) -> str:
    """ユーザーごとの転送先チャンネルIDを返す。"""
    return f"chat-{user_id}"


class ChatPlatformClient:
    """
    Stream Chat のサーバーサイドクライアント。

    起動時に1度だけ生成し、以降は読み取り専用として全リクエストで共有する。
    """

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        *,
        bot_user_id: str = "ai_bot",
        bot_name: str = "AI Assistant",
        client: Optional[Any] = None,
    ) -> None:
        self.bot_user_id = bot_user_id
        self.bot_name = bot_name
        self._client = client if client is not None else StreamChat(api_key=api_key, api_secret=api_secret)

    def user_exists(self, user_id: str) -> bool:
        """ユーザーディレクトリに user_id 完全一致のユーザーがいるか。"""
        resp = self._client.query_users({"id": {"$eq": user_id}})
        users = resp.get("users") or []
        return len(users) > 0

    def upsert_user(self, user_id: str, name: str, email: str, *, role: str = "user") -> None:
        """ユーザーを登録（既存なら上書き）する。"""
        self._client.upsert_user({"id": user_id, "name": name, "email": email, "role": role})
        logger.info("stream user upserted user_id=%s role=%s", user_id, role)

    def ensure_bot_user(self) -> None:
        """返信の送信者となるボットユーザーを登録する。"""
        self._client.upsert_user({"id": self.bot_user_id, "name": self.bot_name, "role": "user"})
        logger.info("stream bot user ready user_id=%s", self.bot_user_id)

    def send_reply(self, user_id: str, text: str) -> None:
        """
        chat-{user_id} チャンネルを取得（無ければ作成）し、ボットとして text を送信する。
        """
        channel = self._client.channel(
            CHANNEL_TYPE,
            channel_id_for(user_id),
            {"name": "AI Chat", "members": [user_id, self.bot_user_id]},
        )
        # create は既存チャンネルなら取得として振る舞う
        channel.create(self.bot_user_id)
        channel.send_message({"text": text}, self.bot_user_id)
        logger.info("reply mirrored channel=%s chars=%s", channel_id_for(user_id), len(text))
