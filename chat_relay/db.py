"""DB 接続とセッション管理。"""

from __future__ import annotations

import contextlib
import logging
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

# users / chats 用 Base
Base = declarative_base()


def _is_in_memory_sqlite(db_url: str) -> bool:
    return db_url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in db_url


def create_db_engine(db_url: str):
    """接続URLに応じたエンジンを作成する。"""
    kwargs: dict = {"future": True}
    if db_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        # インメモリDBは接続ごとに別DBになるため、単一接続を共有する
        if _is_in_memory_sqlite(db_url):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True
    return create_engine(db_url, **kwargs)


def init_db(db_url: str) -> sessionmaker:
    """DBを初期化（テーブル作成）し、sessionmakerを返す。"""
    engine = create_db_engine(db_url)

    # テーブル定義の登録（モデル import が必要）
    import chat_relay.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    session_factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    logger.info("DB initialized: %s", engine.url.render_as_string(hide_password=True))
    return session_factory


@contextlib.contextmanager
def session_scope(session_factory: sessionmaker) -> Iterator[Session]:
    """
    セッションスコープ（with文用）。

    正常終了時はコミット、例外時はロールバックする。
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
