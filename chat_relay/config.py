"""設定読み込み。

優先順位（後勝ち）:
1) Config のデフォルト値
2) TOML 設定ファイル（config/setting.toml、または CHAT_RELAY_CONFIG）
3) 環境変数（.env も dotenv で読み込む）
"""

from __future__ import annotations

import dataclasses
import os
import pathlib
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import tomli
from dotenv import load_dotenv

from chat_relay.paths import get_default_config_file_path, get_default_database_url, resolve_path_under_app_root


DEFAULT_LLM_MODEL = "openrouter/google/gemini-2.0-flash-exp:free"


@dataclass
class Config:
    """起動時に確定する設定（起動後は変更しない）。"""

    # 外部サービスの認証情報
    stream_api_key: str
    stream_api_secret: str
    openrouter_api_key: str

    # 永続化
    database_url: str = ""

    # Completion API
    llm_model: str = DEFAULT_LLM_MODEL
    llm_base_url: Optional[str] = None
    llm_timeout_seconds: Optional[float] = None
    llm_log_level: str = "INFO"

    # HTTP
    port: int = 5000
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    # ログ
    log_level: str = "INFO"
    log_file_enabled: bool = False
    log_file_path: str = "logs/chat_relay.log"

    # チャット
    bot_user_id: str = "ai_bot"
    bot_name: str = "AI Assistant"
    history_limit: int = 10


# 環境変数名 -> Config フィールド名
_ENV_KEYS: Dict[str, str] = {
    "STREAM_API_KEY": "stream_api_key",
    "STREAM_API_SECRET": "stream_api_secret",
    "OPENROUTER_API_KEY": "openrouter_api_key",
    "DATABASE_URL": "database_url",
    "LLM_MODEL": "llm_model",
    "LLM_BASE_URL": "llm_base_url",
    "LLM_TIMEOUT_SECONDS": "llm_timeout_seconds",
    "LLM_LOG_LEVEL": "llm_log_level",
    "PORT": "port",
    "CORS_ORIGINS": "cors_origins",
    "LOG_LEVEL": "log_level",
    "LOG_FILE_ENABLED": "log_file_enabled",
    "LOG_FILE_PATH": "log_file_path",
    "BOT_USER_ID": "bot_user_id",
    "BOT_NAME": "bot_name",
    "HISTORY_LIMIT": "history_limit",
}

_REQUIRED_KEYS = ("stream_api_key", "stream_api_secret", "openrouter_api_key")


def _require(config_dict: dict, key: str, env_name: str) -> str:
    if key not in config_dict or config_dict[key] in (None, ""):
        raise ValueError(f"config key '{key}' is required (env: {env_name})")
    return config_dict[key]


def _coerce(key: str, value: Any) -> Any:
    """環境変数/TOMLの値をフィールドの型へ寄せる。"""
    if value is None:
        return None
    if key in ("port", "history_limit"):
        return int(value)
    if key == "llm_timeout_seconds":
        return float(value) if str(value).strip() else None
    if key == "log_file_enabled":
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in {"1", "true", "yes", "on"}
    if key == "cors_origins":
        if isinstance(value, list):
            return [str(v) for v in value]
        return [s.strip() for s in str(value).split(",") if s.strip()]
    if key == "llm_base_url":
        return str(value) or None
    return str(value)


def _load_toml(path: pathlib.Path) -> dict:
    """TOML設定を読み込む。未知のキーはエラーにする。"""
    with path.open("rb") as f:
        data = tomli.load(f)

    allowed_keys = {f.name for f in dataclasses.fields(Config)}
    unknown_keys = sorted(set(data.keys()) - allowed_keys)
    if unknown_keys:
        keys = ", ".join(repr(k) for k in unknown_keys)
        raise ValueError(f"unknown config key(s): {keys}")
    return data


def load_config(path: str | pathlib.Path | None = None) -> Config:
    """TOML と環境変数から Config を構築する。"""
    load_dotenv()

    explicit = path is not None or bool(os.getenv("CHAT_RELAY_CONFIG"))
    if path is None:
        path = os.getenv("CHAT_RELAY_CONFIG") or get_default_config_file_path()
    config_path = resolve_path_under_app_root(path)

    values: dict = {}
    if config_path.exists():
        values.update(_load_toml(config_path))
    elif explicit:
        raise FileNotFoundError(f"config file not found: {config_path}")

    # 環境変数はTOMLより優先
    for env_name, key in _ENV_KEYS.items():
        env_value = os.getenv(env_name)
        if env_value is not None:
            values[key] = env_value

    for key in _REQUIRED_KEYS:
        env_name = next(k for k, v in _ENV_KEYS.items() if v == key)
        _require(values, key, env_name)

    kwargs = {k: _coerce(k, v) for k, v in values.items()}
    if not kwargs.get("database_url"):
        kwargs["database_url"] = get_default_database_url()
    return Config(**kwargs)

