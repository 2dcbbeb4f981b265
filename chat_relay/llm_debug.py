"""
LLM送受信のデバッグ出力ユーティリティ

Completion API との通信内容をデバッグ用に整形・出力する。

主な機能:
- 秘匿情報（api_key、Authorization 等）の除外・マスク
- 長いログの切り詰め

使い方例:
    from chat_relay.llm_debug import log_llm_payload
    log_llm_payload(logger, "LLM request", payload_dict, llm_log_level="DEBUG")
"""

from __future__ import annotations

import json
import re
from typing import Any, Iterable


# 値をマスクするキー
_DEFAULT_REDACT_KEYS = {
    "openrouter_api_key",
    "stream_api_secret",
    "token",
    "access_token",
    "x-api-key",
}

# ログから完全に除外するキー
_DEFAULT_DROP_KEYS = {
    "api_key",
    "authorization",
}

_BEARER_RE = re.compile(r"\bBearer\s+\S+", re.IGNORECASE)


def _to_serializable(obj: Any) -> Any:
    """json.dumpsできる形に寄せる（失敗しても落とさない）。"""
    if obj is None:
        return None

    if hasattr(obj, "model_dump"):
        try:
            return obj.model_dump()
        except Exception:
            pass

    if isinstance(obj, (dict, list, tuple, str, int, float, bool)):
        return obj

    if isinstance(obj, (bytes, bytearray)):
        return obj.decode("utf-8", errors="replace")

    return str(obj)


def redact_secrets(
    obj: Any,
    *,
    redact_keys: Iterable[str] | None = None,
    drop_keys: Iterable[str] | None = None,
    placeholder: str = "***",
    max_depth: int = 12,
) -> Any:
    """dict/listを再帰的に走査して、秘匿情報っぽい値をマスクする。"""

    keys = {k.lower() for k in (redact_keys or _DEFAULT_REDACT_KEYS)}
    drop = {k.lower() for k in (drop_keys or _DEFAULT_DROP_KEYS)}

    def _walk(v: Any, depth: int) -> Any:
        if depth <= 0:
            return "..."

        if isinstance(v, dict):
            out: dict[str, Any] = {}
            for k, vv in v.items():
                lk = str(k).lower()
                if lk in drop:
                    continue
                if lk in keys:
                    out[str(k)] = placeholder
                else:
                    out[str(k)] = _walk(vv, depth - 1)
            return out

        if isinstance(v, list):
            return [_walk(x, depth - 1) for x in v]

        if isinstance(v, tuple):
            return tuple(_walk(x, depth - 1) for x in v)

        if isinstance(v, str) and _BEARER_RE.search(v):
            return "(authorization omitted)"

        return v

    return _walk(_to_serializable(obj), max_depth)


def truncate_for_log(text: str, limit: int) -> str:
    """ログ出力用にテキストを切り詰める。"""
    if limit <= 0:
        return ""
    if len(text) <= limit:
        return text
    return text[:limit] + "...(Cut)"


def format_debug_payload(payload: Any, *, max_chars: int = 8000) -> str:
    """payloadをデバッグ向けに文字列化する（dict/listなら pretty JSON）。"""
    masked = redact_secrets(payload)
    if isinstance(masked, (dict, list, tuple)):
        try:
            s = json.dumps(masked, ensure_ascii=False, indent=2, sort_keys=True, default=str)
            return truncate_for_log(s, max_chars)
        except Exception:
            return truncate_for_log(str(masked), max_chars)
    return truncate_for_log(str(masked), max_chars)


def normalize_llm_log_level(llm_log_level: str | None) -> str:
    """LLM送受信ログレベルを正規化する。"""
    level = (llm_log_level or "INFO").upper()
    if level not in {"DEBUG", "INFO", "OFF"}:
        return "INFO"
    return level


def log_llm_payload(
    logger: Any,
    label: str,
    payload: Any,
    *,
    llm_log_level: str = "INFO",
    max_chars: int = 8000,
) -> None:
    """LLMの送受信payloadをログ出力する。

    - DEBUG: 内容を整形して出力
    - INFO/OFF: 内容は出さない
    """

    if logger is None:
        return
    if normalize_llm_log_level(llm_log_level) != "DEBUG":
        return
    logger.debug("%s: %s", label, format_debug_payload(payload, max_chars=max_chars))
