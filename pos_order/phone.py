"""
電話番号の正規化

入力された電話番号を検証し、表示用フォーマットと比較用キーに変換する。
副作用なし・I/O なしの純粋関数のみ。

受け付ける形式:
  1. ロシア形式   +7 / 7 / 8 で始まり、数字のみで 11 桁
  2. 国際形式     + で始まり、+ の後の数字が 10〜15 桁
"""

import re

_NOT_PHONE_CHARS = re.compile(r"[^\d+]")
_NOT_DIGITS = re.compile(r"\D")

_RUSSIAN_PREFIXES = ("+7", "7", "8")
_RUSSIAN_LENGTH = 11
_INTERNATIONAL_MIN = 10
_INTERNATIONAL_MAX = 15


def clean_phone(raw: str | None) -> str:
    """数字と + 以外を取り除く。"""
    return _NOT_PHONE_CHARS.sub("", raw or "")


def phone_digits(raw: str | None) -> str:
    """数字だけを残した比較用キー。"""
    return _NOT_DIGITS.sub("", raw or "")


def validate_phone(raw: str | None) -> bool:
    cleaned = clean_phone(raw)

    if cleaned.startswith(_RUSSIAN_PREFIXES):
        digits = phone_digits(cleaned)
        if digits.startswith(("7", "8")):
            return len(digits) == _RUSSIAN_LENGTH

    if cleaned.startswith("+"):
        digits = phone_digits(cleaned[1:])
        return _INTERNATIONAL_MIN <= len(digits) <= _INTERNATIONAL_MAX

    return False


def format_phone(raw: str | None) -> str:
    """
    ロシア形式の 11 桁を "+7 (XXX) XXX-XX-XX" に整形する。

    それ以外の入力はそのまま返す（国際形式は整形しない）。
    """
    digits = phone_digits(raw)
    if len(digits) == _RUSSIAN_LENGTH and digits.startswith(("7", "8")):
        return f"+7 ({digits[1:4]}) {digits[4:7]}-{digits[7:9]}-{digits[9:11]}"
    return raw or ""
