"""
リクエスト処理の失敗種別

ハンドラ内の失敗を「入力不備 / 対象なし / 上流障害」の3種に分類する。
呼び出し側とテストは文字列ではなく kind で判定できる。
API層では {"error": message} のフラットなJSONに変換される。
"""

from __future__ import annotations

from enum import Enum


class FailureKind(str, Enum):
    """失敗の分類。"""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    UPSTREAM = "upstream"


class RelayError(Exception):
    """リクエスト処理失敗の基底クラス。"""

    kind: FailureKind = FailureKind.UPSTREAM
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationFailure(RelayError):
    """必須フィールド欠落など（外部呼び出しは一切行っていない）。"""

    kind = FailureKind.VALIDATION
    status_code = 400


class NotFound(RelayError):
    """参照したユーザーがどちらかのストアに存在しない。"""

    kind = FailureKind.NOT_FOUND
    status_code = 404


class UpstreamFailure(RelayError):
    """DB / チャット基盤 / Completion API の呼び出し失敗、または想定外の応答。"""

    kind = FailureKind.UPSTREAM
    status_code = 500
