"""
ORM モデル定義

- users: 登録ユーザー（user_id はメールアドレスから導出）
- chats: 1往復ぶんの会話（ユーザー発話とAI応答）。作成後は更新しない。

NOTE:
- chats.user_id は users への外部キー制約を宣言しない。
  存在確認はアプリ側（RelayService.chat）で挿入前に行う。
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from chat_relay.db import Base


_USER_ID_MAX_LEN = 320
_NAME_MAX_LEN = 255


def _utcnow() -> datetime:
    """挿入時刻（UTC, naive）を返す。"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    """登録ユーザー。"""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(_USER_ID_MAX_LEN), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(_NAME_MAX_LEN), nullable=False)
    email: Mapped[str] = mapped_column(String(_USER_ID_MAX_LEN), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)


class Chat(Base):
    """1往復の会話ターン。"""

    __tablename__ = "chats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(_USER_ID_MAX_LEN), nullable=False, index=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    reply: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow, index=True)
