"""chat_relay.llm_client

LiteLLM ラッパー。

1ターンにつき1回だけ `litellm.completion()` を同期で呼び出し、
OpenAI の chat.completions 互換の messages 形式で会話履歴を渡す。
既定では OpenRouter 経由の Gemini モデルを使う。
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

import litellm

from chat_relay.llm_debug import log_llm_payload, normalize_llm_log_level
from chat_relay.logging_config import LLM_IO_LOGGER_NAME


# 応答から本文が取り出せなかったときに使う固定文言
FALLBACK_REPLY = "No response from AI"


def first_choice_content(resp: Any) -> str:
    """
    choices[0].message.contentを取り出すユーティリティ。
    形が想定外なら空文字を返す。
    """
    try:
        choice = resp["choices"][0] if isinstance(resp, dict) else resp.choices[0]
        message = choice["message"] if isinstance(choice, dict) else choice.message
        content = message["content"] if isinstance(message, dict) else message.content
        # OpenAI形式で content が list の場合もあるため統一
        if isinstance(content, list):
            return "".join([item.get("text", "") if isinstance(item, dict) else str(item) for item in content])
        return content or ""
    except Exception:  # noqa: BLE001
        return ""


def _finish_reason(resp: Any) -> str:
    """レスポンスからfinish_reasonを取得する。"""
    try:
        choice = resp["choices"][0] if isinstance(resp, dict) else resp.choices[0]
        finish_reason = choice.get("finish_reason") if isinstance(choice, dict) else choice.finish_reason
        return str(finish_reason or "")
    except Exception:  # noqa: BLE001
        return ""


def _estimate_text_chars(messages: List[Dict[str, str]]) -> int:
    """INFOログ用の「おおまかな文字量」。"""
    return sum(len(str(m.get("content") or "")) for m in messages)


class CompletionClient:
    """
    Completion API クライアント。
    LiteLLMを使用して、順序付きのメッセージ列から応答を1件生成する。
    """

    _DEBUG_PREVIEW_CHARS = 5000

    def __init__(
        self,
        model: str,
        api_key: Optional[str] = None,
        *,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        llm_log_level: str = "INFO",
    ):
        """
        Args:
            model: LiteLLMのモデル名（例: openrouter/google/gemini-2.0-flash-exp:free）
            api_key: APIキー
            base_url: APIベースURL（未指定ならLiteLLMの既定）
            timeout_seconds: 呼び出しタイムアウト（未指定なら設定しない）
            llm_log_level: 送受信ログの詳細度（DEBUG/INFO/OFF）
        """
        self.logger = logging.getLogger(__name__)
        self.io_logger = logging.getLogger(LLM_IO_LOGGER_NAME)
        self.model = model
        self.api_key = api_key
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self.llm_log_level = normalize_llm_log_level(llm_log_level)

    def _build_completion_kwargs(self, messages: List[Dict[str, str]]) -> Dict[str, Any]:
        """completion API呼び出し用のkwargsを構築する。"""
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
        }
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.base_url:
            kwargs["api_base"] = self.base_url
        if self.timeout_seconds:
            kwargs["timeout"] = self.timeout_seconds
        return kwargs

    def complete(self, messages: List[Dict[str, str]]) -> Any:
        """メッセージ列を送信し、LiteLLMのResponseをそのまま返す。"""
        kwargs = self._build_completion_kwargs(messages)
        start = time.perf_counter()

        if self.llm_log_level != "OFF":
            self.io_logger.info(
                "LLM request sent model=%s messages=%s approx_chars=%s",
                self.model,
                len(messages),
                _estimate_text_chars(messages),
            )
        log_llm_payload(
            self.io_logger,
            "LLM request",
            kwargs,
            llm_log_level=self.llm_log_level,
            max_chars=self._DEBUG_PREVIEW_CHARS,
        )

        try:
            resp = litellm.completion(**kwargs)
        except Exception as exc:
            if self.llm_log_level != "OFF":
                elapsed_ms = int((time.perf_counter() - start) * 1000)
                self.io_logger.error(
                    "LLM request failed model=%s messages=%s ms=%s error=%s",
                    self.model,
                    len(messages),
                    elapsed_ms,
                    str(exc),
                    exc_info=exc,
                )
            raise

        elapsed_ms = int((time.perf_counter() - start) * 1000)
        content = first_choice_content(resp)
        if self.llm_log_level != "OFF":
            self.io_logger.info(
                "LLM response received model=%s finish_reason=%s chars=%s ms=%s",
                self.model,
                _finish_reason(resp),
                len(content),
                elapsed_ms,
            )
        log_llm_payload(
            self.io_logger,
            "LLM response",
            {"model": self.model, "content": content},
            llm_log_level=self.llm_log_level,
            max_chars=self._DEBUG_PREVIEW_CHARS,
        )
        return resp

    def generate_reply(self, messages: List[Dict[str, str]]) -> str:
        """応答本文を返す。本文が取り出せなければ FALLBACK_REPLY。"""
        content = first_choice_content(self.complete(messages))
        if not content:
            self.logger.warning("LLM response had no usable choice; using fallback reply")
            return FALLBACK_REPLY
        return content
