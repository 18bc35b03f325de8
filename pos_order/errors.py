"""
エラー分類

  DraftIncompleteError   ローカル検証エラー (必須項目の不足)。ネットワークには出ない
  AuthenticationError    HTTP 401/403。トークンの再入力が必要
  ConnectivityError      通信層のエラー (HTTP ステータスを受け取れていない)
  RemoteValidationError  detail: [{msg, loc}] 形式のフィールド単位エラー
  RemoteError            上記以外のリモートエラー

どれも自動リトライはしない。次のユーザー操作で改めて実行する。
"""

from typing import Any

from pydantic import BaseModel

UNKNOWN_ERROR = "Неизвестная ошибка"
CONNECTIVITY_MESSAGE = "Ошибка подключения к серверу. Проверьте интернет-соединение"


class OrderError(Exception):
    """このパッケージが送出する例外の基底クラス"""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class DraftIncompleteError(OrderError):
    def __init__(self, missing: list[str], message: str = "Заполните все обязательные поля") -> None:
        super().__init__(message)
        self.missing = list(missing)


class StepBlockedError(DraftIncompleteError):
    """ウィザードの「次へ」が許可されない"""


class NotLoadedError(OrderError):
    """指定された id がカタログに読み込まれていない"""


class AuthenticationError(OrderError):
    def __init__(self, status_code: int, message: str = "Токен недействителен") -> None:
        super().__init__(message)
        self.status_code = status_code


class ConnectivityError(OrderError):
    def __init__(self, message: str = CONNECTIVITY_MESSAGE) -> None:
        super().__init__(message)


class FieldProblem(BaseModel):
    msg: str
    loc: list[str | int] = []

    @property
    def field_path(self) -> str:
        return ".".join(str(part) for part in self.loc)

    def render(self) -> str:
        if self.loc:
            return f"{self.msg} (поле: {self.field_path})"
        return self.msg


class RemoteValidationError(OrderError):
    def __init__(self, status_code: int, problems: list[FieldProblem]) -> None:
        self.status_code = status_code
        self.problems = problems
        super().__init__(
            "; ".join(f"{i}. {p.render()}" for i, p in enumerate(problems, start=1))
        )


class RemoteError(OrderError):
    def __init__(self, message: str = UNKNOWN_ERROR, status_code: int | None = None) -> None:
        super().__init__(message or UNKNOWN_ERROR)
        self.status_code = status_code


def _field_path(loc: Any) -> list:
    if loc is None or loc == "":
        return []
    return list(loc) if isinstance(loc, (list, tuple)) else [loc]


def error_from_payload(status_code: int, payload: Any) -> OrderError:
    """
    HTTP エラーレスポンスの本文を分類する。

    401/403 は呼び出し側 (client) で AuthenticationError にしているため
    ここでは扱わない。
    """
    if isinstance(payload, dict):
        detail = payload.get("detail")
        if isinstance(detail, list) and detail:
            problems = [
                FieldProblem(msg=str(d.get("msg", UNKNOWN_ERROR)), loc=_field_path(d.get("loc")))
                for d in detail
                if isinstance(d, dict)
            ]
            if problems:
                return RemoteValidationError(status_code, problems)
        if payload.get("message"):
            return RemoteError(str(payload["message"]), status_code)
        if isinstance(detail, str) and detail:
            return RemoteError(detail, status_code)
    return RemoteError(f"Request failed with status code {status_code}", status_code)


def describe_sale_error(exc: BaseException) -> str:
    """販売伝票の作成失敗をユーザー向けの 1 行にまとめる。"""
    if isinstance(exc, DraftIncompleteError):
        return exc.message
    message = getattr(exc, "message", None) or str(exc) or UNKNOWN_ERROR
    return f"Ошибка создания продажи: {message}"
