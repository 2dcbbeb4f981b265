"""
ロギング設定

アプリケーションのログ出力を設定する。
標準loggingの初期化、外部ライブラリのログ抑制、
uvicornアクセスログからの特定パス除外などを行う。
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

from chat_relay.paths import resolve_path_under_app_root


LLM_IO_LOGGER_NAME = "chat_relay.llm_io"


class _UvicornAccessPathFilter(logging.Filter):
    """
    uvicornアクセスログから特定パスを除外するフィルタ。

    ヘルスチェック等の頻繁なリクエストをログから除外する。
    """

    def __init__(self, suppressed_paths: set[str]) -> None:
        super().__init__()
        self._suppressed_paths = suppressed_paths

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        try:
            msg = record.getMessage()
        except Exception:
            return True
        return not any(path in msg for path in self._suppressed_paths)


def suppress_uvicorn_access_log_paths(*paths: str) -> None:
    """uvicornアクセスログから指定パスを含む行を出力しないようにする。"""
    if not paths:
        return
    logger = logging.getLogger("uvicorn.access")
    logger.addFilter(_UvicornAccessPathFilter(set(paths)))


def setup_logging(
    level: str = "INFO",
    *,
    log_file_enabled: bool = False,
    log_file_path: str = "logs/chat_relay.log",
    llm_log_level: str = "INFO",
) -> None:
    """
    ロギングを初期化する。

    標準loggingのフォーマット設定と、外部ライブラリのログレベル調整を行う。
    スタックトレースや上流のエラー本文はここで設定したハンドラにだけ出る。
    """
    root_level = getattr(logging, level.upper(), logging.INFO)
    console_handler = logging.StreamHandler()
    handlers: list[logging.Handler] = [console_handler]
    if log_file_enabled:
        log_path = resolve_path_under_app_root(log_file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        # ファイルログは最大1MBでローテーション
        handlers.append(
            RotatingFileHandler(
                log_path,
                maxBytes=1_000_000,
                backupCount=1,
                encoding="utf-8",
            )
        )

    logging.basicConfig(
        level=root_level,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        handlers=handlers,
    )
    _setup_llm_io_logger(logging.DEBUG if llm_log_level.upper() == "DEBUG" else root_level, handlers)
    # 外部ライブラリの冗長なログを抑制
    for name, lib_level in [
        ("LiteLLM", logging.INFO),
        ("litellm", logging.INFO),
        ("openai", logging.INFO),
        ("httpcore", logging.WARNING),
        ("httpx", logging.WARNING),
        ("urllib3", logging.WARNING),
    ]:
        logging.getLogger(name).setLevel(lib_level)


def _setup_llm_io_logger(io_level: int, handlers: list[logging.Handler]) -> None:
    """LLM送受信ログ用のロガーを初期化する（rootへは伝播させない）。"""
    io_logger = logging.getLogger(LLM_IO_LOGGER_NAME)
    io_logger.handlers.clear()
    for handler in handlers:
        io_logger.addHandler(handler)
    io_logger.setLevel(io_level)
    io_logger.propagate = False
