"""
users / chats のリポジトリ（最小のCRUD補助）

RelayService から呼ばれる点検索・範囲検索・挿入をここに集約する。
コミットは呼び出し側のセッションスコープに任せる（ここでは flush のみ）。
"""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from chat_relay.models import Chat, User


def get_user(db: Session, user_id: str) -> Optional[User]:
    """user_id 一致でユーザーを1件取得する。"""

    return db.execute(select(User).where(User.user_id == user_id).limit(1)).scalar_one_or_none()


def create_user(db: Session, *, user_id: str, name: str, email: str) -> User:
    """ユーザーを作成する。"""

    row = User(user_id=user_id, name=name, email=email)
    db.add(row)
    db.flush()
    return row


def recent_chats(db: Session, user_id: str, *, limit: int) -> List[Chat]:
    """
    直近 limit 件の会話ターンを、古い順に並べて返す。

    取得は新しい順（created_at, id の降順）で行い、最後に反転する。
    """

    # --- 新しい順に limit 件 ---
    rows = (
        db.execute(
            select(Chat)
            .where(Chat.user_id == user_id)
            .order_by(Chat.created_at.desc(), Chat.id.desc())
            .limit(int(limit))
        )
        .scalars()
        .all()
    )
    # --- 時系列（昇順）へ ---
    return list(reversed(rows))


def list_chats(db: Session, user_id: str) -> List[Chat]:
    """ユーザーの全会話ターンを返す（並び順はDB任せ）。"""

    return list(db.execute(select(Chat).where(Chat.user_id == user_id)).scalars().all())


def add_chat(db: Session, *, user_id: str, message: str, reply: str) -> Chat:
    """会話ターンを1件追加する。"""

    row = Chat(user_id=user_id, message=message, reply=reply)
    db.add(row)
    db.flush()
    return row
