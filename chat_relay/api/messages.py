"""
/get-messages エンドポイント

userId はクエリパラメータで受け取る。
既存クライアント互換のため POST を維持し、GET でも同じ応答を返す。
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from chat_relay import schemas
from chat_relay.deps import get_relay_service
from chat_relay.relay import RelayService


router = APIRouter(tags=["messages"])


@router.api_route(
    "/get-messages",
    methods=["GET", "POST"],
    response_model=schemas.MessagesResponse,
    responses={400: {"model": schemas.ErrorResponse}, 500: {"model": schemas.ErrorResponse}},
)
def get_messages(
    user_id: Optional[str] = Query(default=None, alias="userId"),
    relay: RelayService = Depends(get_relay_service),
):
    """ユーザーの保存済み会話ターンを返す。"""
    return relay.get_messages(user_id)
