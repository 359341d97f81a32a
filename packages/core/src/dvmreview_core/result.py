"""Typed outcome for every operation that crosses a capability boundary.

Signer, relay pool and wallet calls all report back the same way, so the CLI
decides whether a missing capability is worth a message and whether a
transport error should abort the command.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

from dvmreview_core.errors import CapabilityError

T = TypeVar("T")


class ResultStatus(str, Enum):
    OK = "ok"
    CAPABILITY_MISSING = "capability_missing"
    TRANSPORT_ERROR = "transport_error"


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    status: ResultStatus
    value: Optional[T] = None
    message: str = ""
    error: Optional[BaseException] = None

    @classmethod
    def ok(cls, value: Optional[T] = None) -> OperationResult[T]:
        return cls(ResultStatus.OK, value=value)

    @classmethod
    def missing(cls, message: str) -> OperationResult[T]:
        return cls(ResultStatus.CAPABILITY_MISSING, message=message)

    @classmethod
    def failed(cls, error: BaseException, message: str = "", value: Optional[T] = None) -> OperationResult[T]:
        return cls(ResultStatus.TRANSPORT_ERROR, value=value, message=message or str(error), error=error)

    @property
    def is_ok(self) -> bool:
        return self.status is ResultStatus.OK

    def unwrap(self) -> T:
        """Return the value, or re-raise the transport error that produced this result."""
        if self.error is not None:
            raise self.error
        if not self.is_ok:
            raise CapabilityError(self.message)
        return self.value
