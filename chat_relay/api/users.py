"""/register-user エンドポイント"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import ValidationError

from chat_relay import schemas
from chat_relay.deps import get_relay_service, read_body
from chat_relay.errors import ValidationFailure
from chat_relay.relay import REGISTER_FIELDS_REQUIRED, RelayService


router = APIRouter(tags=["users"])


@router.post(
    "/register-user",
    response_model=schemas.RegisterUserResponse,
    responses={400: {"model": schemas.ErrorResponse}, 500: {"model": schemas.ErrorResponse}},
)
def register_user(
    body: Dict[str, Any] = Depends(read_body),
    relay: RelayService = Depends(get_relay_service),
):
    """チャット基盤とDBの両方にユーザーを登録する（既存なら何もしない）。"""
    try:
        request = schemas.RegisterUserRequest.model_validate(body)
    except ValidationError as exc:
        raise ValidationFailure(REGISTER_FIELDS_REQUIRED) from exc
    return relay.register_user(request.name, request.email)
