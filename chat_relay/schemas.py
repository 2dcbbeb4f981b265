"""API リクエスト/レスポンスの Pydantic モデル。

ワイヤ上のキーは camelCase（userId, createdAt）なので alias で対応する。
リクエスト側は全フィールド任意にして、必須チェックは RelayService で行う
（欠落時は 422 ではなく 400 を返すため）。
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ChatRequest(_CamelModel):
    """/chat 用リクエスト。"""
    message: Optional[str] = None
    user_id: Optional[str] = Field(default=None, alias="userId")


class ChatResponse(_CamelModel):
    """/chat の応答（AIの返信本文）。"""
    reply: str


class RegisterUserRequest(_CamelModel):
    """/register-user 用リクエスト。"""
    name: Optional[str] = None
    email: Optional[str] = None


class RegisterUserResponse(_CamelModel):
    user_id: str = Field(alias="userId")
    name: str
    email: str


class ChatMessage(_CamelModel):
    """保存済みの会話ターン1件。"""
    id: int
    user_id: str = Field(alias="userId")
    message: str
    reply: str
    created_at: datetime = Field(alias="createdAt")


class MessagesResponse(_CamelModel):
    messages: List[ChatMessage] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """失敗時のフラットなエラーオブジェクト。"""
    error: str
