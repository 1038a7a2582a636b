"""ZIP 302 memo field interpretation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from .errors import InvalidMemo

MEMO_SIZE = 512


@dataclass(frozen=True)
class EmptyMemo:
    pass


@dataclass(frozen=True)
class TextMemo:
    text: str


@dataclass(frozen=True)
class ArbitraryMemo:
    data: bytes


@dataclass(frozen=True)
class FutureMemo:
    """A memo whose first byte is reserved for a future format."""

    data: bytes


Memo = Union[EmptyMemo, TextMemo, ArbitraryMemo, FutureMemo]


def parse_memo(data: bytes) -> Memo:
    """Classify 512 raw memo bytes.

    A first byte up to 0xF4 starts a UTF-8 text memo padded with zeros; 0xF6
    followed by zeros is the empty memo; 0xFF marks arbitrary data. Anything
    else is reserved.
    """

    if len(data) != MEMO_SIZE:
        raise InvalidMemo(f"memo must be {MEMO_SIZE} bytes, got {len(data)}")
    lead = data[0]
    if lead <= 0xF4:
        try:
            return TextMemo(data.rstrip(b"\x00").decode("utf-8"))
        except UnicodeDecodeError as exc:
            raise InvalidMemo(f"text memo is not valid UTF-8: {exc}") from exc
    if lead == 0xF6 and not any(data[1:]):
        return EmptyMemo()
    if lead == 0xFF:
        return ArbitraryMemo(data[1:])
    return FutureMemo(bytes(data))
