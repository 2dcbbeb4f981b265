"""FastAPI エントリポイント。"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException

from chat_relay.api import chat, messages, users
from chat_relay.config import Config
from chat_relay.errors import RelayError
from chat_relay.llm_client import CompletionClient
from chat_relay.stream_client import ChatPlatformClient


logger = logging.getLogger(__name__)


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _install_exception_handlers(app: FastAPI) -> None:
    """失敗を {"error": message} のフラットなJSONに変換するハンドラを登録する。"""

    @app.exception_handler(RelayError)
    async def handle_relay_error(request: Request, exc: RelayError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed kind=%s", request.method, request.url.path, exc.kind.value)
        return _error_response(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info("request validation failed path=%s errors=%s", request.url.path, exc.errors())
        return _error_response(400, "Invalid request")

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        # 不正なフォーム、未定義パス、許可されないメソッドなど（フレームワーク側の失敗）
        return _error_response(exc.status_code, str(exc.detail))


def create_app(
    config: Optional[Config] = None,
    *,
    session_factory: Optional[sessionmaker] = None,
    chat_platform: Optional[ChatPlatformClient] = None,
    completion_client: Optional[CompletionClient] = None,
) -> FastAPI:
    """
    アプリ生成と初期化（設定→ログ→DB→外部クライアント→ルータ登録）をまとめて行う。

    引数で渡されたクライアントはそのまま使い、無いものだけ設定から生成する。
    """
    from chat_relay.config import load_config
    from chat_relay.db import init_db
    from chat_relay.logging_config import setup_logging, suppress_uvicorn_access_log_paths
    from chat_relay.relay import RelayService

    # 1. 設定
    if config is None:
        config = load_config()
        setup_logging(
            config.log_level,
            log_file_enabled=config.log_file_enabled,
            log_file_path=config.log_file_path,
            llm_log_level=config.llm_log_level,
        )
        suppress_uvicorn_access_log_paths("/health")

    # 2. DB
    if session_factory is None:
        session_factory = init_db(config.database_url)

    # 3. 外部クライアント（起動時に1度だけ生成し、以降は共有）
    bootstrap_bot = chat_platform is None
    if chat_platform is None:
        chat_platform = ChatPlatformClient(
            config.stream_api_key,
            config.stream_api_secret,
            bot_user_id=config.bot_user_id,
            bot_name=config.bot_name,
        )
    if completion_client is None:
        completion_client = CompletionClient(
            config.llm_model,
            config.openrouter_api_key,
            base_url=config.llm_base_url,
            timeout_seconds=config.llm_timeout_seconds,
            llm_log_level=config.llm_log_level,
        )

    # 4. FastAPIアプリ
    app = FastAPI(title="Chat Relay API")
    app.state.relay = RelayService(
        session_factory,
        chat_platform,
        completion_client,
        history_limit=config.history_limit,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _install_exception_handlers(app)

    app.include_router(chat.router)
    app.include_router(users.router)
    app.include_router(messages.router)

    @app.get("/health")
    async def health():
        """稼働確認用のヘルスチェック。"""
        return {"status": "healthy"}

    if bootstrap_bot:

        @app.on_event("startup")
        def ensure_bot_user() -> None:
            """返信送信用のボットユーザーをチャット基盤に登録する。"""
            try:
                chat_platform.ensure_bot_user()
            except Exception as exc:  # noqa: BLE001
                # 転送時に改めて失敗するので、ここでは起動を止めない
                logger.warning("bot user registration failed: %s", exc, exc_info=exc)

    return app
