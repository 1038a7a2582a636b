"""Exception hierarchy shared by the scanning core and its boundary layers."""

from __future__ import annotations


class ZcashScanError(ValueError):
    """Base class for caller-input errors raised by :mod:`zcash_scan`."""


class UnsupportedNetwork(ZcashScanError):
    """Raised when a network selector is neither mainnet nor testnet."""

    def __init__(self, value: object) -> None:
        super().__init__(
            f"unsupported network '{value}', expected 'mainnet' or 'testnet'"
        )
        self.value = value


class InvalidEncoding(ZcashScanError):
    """Raised when a unified viewing key fails structural or checksum validation."""


class NetworkMismatch(InvalidEncoding):
    """Raised when a viewing key was encoded for a different network."""


class MalformedTransaction(ZcashScanError):
    """Raised when raw bytes do not parse as a transaction.

    ``step`` names the part of the encoding that failed so callers can tell a
    truncated buffer apart from a transaction read under the wrong era.
    """

    def __init__(self, step: str, detail: str) -> None:
        super().__init__(f"failed to parse transaction ({step}): {detail}")
        self.step = step
        self.detail = detail


class VersionMismatch(MalformedTransaction):
    """Raised when a transaction's version does not belong to the selected era."""


class InvalidMemo(ZcashScanError):
    """Raised when a memo claims to be text but is not valid UTF-8."""


class BatchItemError(ZcashScanError):
    """Raised in strict batch mode when one transaction of a batch fails."""

    def __init__(self, index: int, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.index = index
        self.cause = cause
