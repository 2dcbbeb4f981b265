"""依存オブジェクトの取得（FastAPI依存性注入用）。"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import Request

from chat_relay.errors import ValidationFailure
from chat_relay.relay import RelayService


def get_relay_service(request: Request) -> RelayService:
    """起動時に app.state へ登録した RelayService を返す。"""
    return request.app.state.relay


async def read_body(request: Request) -> Dict[str, Any]:
    """
    リクエストボディを dict として読む。

    JSON とフォーム（application/x-www-form-urlencoded, multipart）の両方を受け付ける。
    ボディが無い場合は空dict。
    """
    content_type = request.headers.get("content-type", "").lower()
    if content_type.startswith("application/x-www-form-urlencoded") or content_type.startswith("multipart/form-data"):
        form = await request.form()
        return {k: v for k, v in form.items() if isinstance(v, str)}

    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        data = await request.json()
    except ValueError as exc:
        raise ValidationFailure("Request body must be valid JSON") from exc
    if not isinstance(data, dict):
        raise ValidationFailure("Request body must be a JSON object")
    return data
