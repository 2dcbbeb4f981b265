"""実行時パス解決。

設定・DB・ログなどの可変データはアプリルート配下に集約する。

方針:
- 環境変数 CHAT_RELAY_HOME があれば最優先
- それ以外は CWD をアプリルートとする（run.py と相性が良い）
"""

from __future__ import annotations

import os
from pathlib import Path


def get_app_root_dir() -> Path:
    """アプリのルートディレクトリを返す。"""

    env_home = os.getenv("CHAT_RELAY_HOME")
    if env_home:
        return Path(env_home).expanduser().resolve()
    return Path.cwd().resolve()


def get_config_dir() -> Path:
    """設定ディレクトリ（config/）を返す。作成はしない。"""

    return get_app_root_dir() / "config"


def get_data_dir() -> Path:
    """データディレクトリ（data/）を返し、存在しなければ作成する。"""

    data_dir = get_app_root_dir() / "data"
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def get_default_config_file_path() -> Path:
    """既定の設定ファイルパス（config/setting.toml）を返す。"""

    return get_config_dir() / "setting.toml"


def get_default_database_url() -> str:
    """DATABASE_URL 未指定時の SQLite URL（data/chat_relay.db）を返す。"""

    return f"sqlite:///{get_data_dir() / 'chat_relay.db'}"


def resolve_path_under_app_root(path: str | Path) -> Path:
    """相対パスをアプリルート基準の絶対パスに解決する。

    - 絶対パスはそのまま返す
    - 相対パスは app_root / path として解決する
    """

    p = Path(path)
    if p.is_absolute():
        return p
    return (get_app_root_dir() / p).resolve()
