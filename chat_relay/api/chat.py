"""
/chat エンドポイント

ユーザーの発話を受け取り、直近の会話履歴と合わせて Completion API に送る。
応答は DB に保存され、チャット基盤のチャンネルにも転送される。
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import ValidationError

from chat_relay import schemas
from chat_relay.deps import get_relay_service, read_body
from chat_relay.errors import ValidationFailure
from chat_relay.relay import CHAT_FIELDS_REQUIRED, RelayService


router = APIRouter(tags=["chat"])


@router.post(
    "/chat",
    response_model=schemas.ChatResponse,
    responses={
        400: {"model": schemas.ErrorResponse},
        404: {"model": schemas.ErrorResponse},
        500: {"model": schemas.ErrorResponse},
    },
)
def chat(
    body: Dict[str, Any] = Depends(read_body),
    relay: RelayService = Depends(get_relay_service),
):
    """1ターン分の会話を処理して返信を返す。"""
    try:
        request = schemas.ChatRequest.model_validate(body)
    except ValidationError as exc:
        # 型違いも欠落と同じ扱い
        raise ValidationFailure(CHAT_FIELDS_REQUIRED) from exc
    return relay.chat(request.user_id, request.message)
