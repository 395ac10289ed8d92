"""
Shared — コマンド結果 (Result) とエラー種別 (ErrorKind)

各サービスのコマンドは例外ではなく Result 値を返す。
Saga はクラス階層ではなく kind を見て補償を判断する。

HTTP 境界を越えても kind が失われないように、
レスポンスボディは常に同じ Result 形式で返す:

    {"success": false, "kind": "NOT_AVAILABLE", "reason": "...", "data": null}
"""

from enum import Enum
from typing import Any

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError


class ErrorKind(str, Enum):
    NOT_FOUND = "NOT_FOUND"                  # エンティティが存在しない
    NOT_AVAILABLE = "NOT_AVAILABLE"          # 在庫不足
    NOT_ENOUGH_AMOUNT = "NOT_ENOUGH_AMOUNT"  # 残高不足
    BAD_ACCOUNT = "BAD_ACCOUNT"              # 支払い口座がない
    BAD_ORDER = "BAD_ORDER"                  # 注文の永続化で ID が得られなかった
    CONFLICT = "CONFLICT"                    # 同じ注文に対する重複操作
    BAD_REQUEST = "BAD_REQUEST"              # リクエストの値が不正
    REMOTE_CALL = "REMOTE_CALL"              # 通信レベルの失敗


HTTP_STATUS: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.NOT_AVAILABLE: 409,
    ErrorKind.NOT_ENOUGH_AMOUNT: 409,
    ErrorKind.CONFLICT: 409,
    ErrorKind.BAD_ACCOUNT: 422,
    ErrorKind.BAD_REQUEST: 422,
    ErrorKind.BAD_ORDER: 500,
    ErrorKind.REMOTE_CALL: 502,
}


class Result(BaseModel):
    """コマンドの実行結果"""
    success: bool
    kind: ErrorKind | None = None
    reason: str = ""
    data: dict[str, Any] | None = None

    @classmethod
    def ok(cls, data: dict[str, Any] | None = None, reason: str = "") -> "Result":
        return cls(success=True, data=data, reason=reason)

    @classmethod
    def fail(cls, kind: ErrorKind, reason: str) -> "Result":
        return cls(success=False, kind=kind, reason=reason)


def to_response(result: Result, status_code: int = 200) -> JSONResponse:
    """Result を HTTP レスポンスに変換する。失敗時のステータスは kind から決まる。"""
    if not result.success:
        status_code = HTTP_STATUS.get(result.kind, 500)
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    リクエストの検証エラーも Result 形式 (BAD_REQUEST) で返す。

    FastAPI 標準の {"detail": [...]} のままだと、呼び出し側の
    from_response が通信エラー (REMOTE_CALL) と区別できない。
    """
    problems = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    )
    return to_response(Result.fail(ErrorKind.BAD_REQUEST, f"Invalid request: {problems}"))


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, validation_error_handler)


def from_response(resp: httpx.Response) -> Result:
    """
    HTTP レスポンスを Result に戻す。

    Result 形式でないボディ（プロキシのエラーページなど）は
    REMOTE_CALL として扱う。
    """
    try:
        body = resp.json()
    except ValueError:
        body = None

    if isinstance(body, dict) and "success" in body:
        try:
            result = Result.model_validate(body)
        except ValidationError:
            result = None
        if result is not None:
            if not result.success and result.kind is None:
                result.kind = ErrorKind.REMOTE_CALL
            return result

    return Result.fail(
        ErrorKind.REMOTE_CALL,
        f"Unexpected response from {resp.request.url}: HTTP {resp.status_code}",
    )
