"""Record id generation and validation."""

from __future__ import annotations

import re
import secrets
import time
from collections.abc import Callable
from typing import Final

from habit_vault.constants import RECORD_ID_PREFIX, RECORD_ID_SUFFIX_LENGTH

BASE36_ALPHABET: Final[str] = "0123456789abcdefghijklmnopqrstuvwxyz"
_SUFFIX_RANDOM_BYTES: Final[int] = 6
_SUFFIX_SPACE: Final[int] = len(BASE36_ALPHABET) ** RECORD_ID_SUFFIX_LENGTH
_SEPARATOR: Final[str] = "-"

_RECORD_ID_RE: Final[re.Pattern[str]] = re.compile(
    rf"^{RECORD_ID_PREFIX}-(\d{{1,15}})-([0-9a-z]{{{RECORD_ID_SUFFIX_LENGTH}}})$"
)

_RandBytes = Callable[[int], bytes]

__all__ = [
    "BASE36_ALPHABET",
    "generate_record_id",
    "parse_record_timestamp_ms",
    "validate_record_id",
]


def generate_record_id(
    *,
    timestamp_ms: int | None = None,
    randbytes: _RandBytes | None = None,
) -> str:
    """Generate a record id of the form ``habit-<epoch ms>-<9 base36 chars>``."""
    ts_ms = _resolve_timestamp_ms(timestamp_ms)
    provider = randbytes if randbytes is not None else secrets.token_bytes
    raw = provider(_SUFFIX_RANDOM_BYTES)
    if not isinstance(raw, (bytes, bytearray)) or len(raw) != _SUFFIX_RANDOM_BYTES:
        raise ValueError(f"randbytes must return exactly {_SUFFIX_RANDOM_BYTES} bytes")
    suffix = _encode_base36(int.from_bytes(raw, "big") % _SUFFIX_SPACE, RECORD_ID_SUFFIX_LENGTH)
    return _SEPARATOR.join((RECORD_ID_PREFIX, str(ts_ms), suffix))


def validate_record_id(record_id: str) -> None:
    """Raise ``ValueError`` when ``record_id`` is not a generated record id."""
    _ = _match_record_id(record_id)


def parse_record_timestamp_ms(record_id: str) -> int:
    """Extract the creation timestamp (epoch milliseconds) from a record id."""
    match = _match_record_id(record_id)
    return int(match.group(1))


def _match_record_id(record_id: str) -> re.Match[str]:
    if not isinstance(record_id, str):
        raise ValueError(f"record id must be a string, got {type(record_id).__name__}")
    match = _RECORD_ID_RE.fullmatch(record_id)
    if match is None:
        raise ValueError(
            f"invalid record id {record_id!r}: expected "
            f"'{RECORD_ID_PREFIX}-<epoch ms>-<{RECORD_ID_SUFFIX_LENGTH} base36 chars>'"
        )
    return match


def _resolve_timestamp_ms(timestamp_ms: int | None) -> int:
    if timestamp_ms is None:
        return time.time_ns() // 1_000_000
    if isinstance(timestamp_ms, bool) or not isinstance(timestamp_ms, int):
        raise ValueError(f"timestamp_ms must be an int, got {type(timestamp_ms).__name__}")
    if timestamp_ms < 0:
        raise ValueError("timestamp_ms must be >= 0")
    return timestamp_ms


def _encode_base36(value: int, length: int) -> str:
    chars = ["0"] * length
    for index in range(length - 1, -1, -1):
        value, remainder = divmod(value, len(BASE36_ALPHABET))
        chars[index] = BASE36_ALPHABET[remainder]
    return "".join(chars)
