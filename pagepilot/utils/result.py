"""
Soft-failure results for operator and storage calls.

Credential writes, snapshot persistence, provider registration and the
admin controls on ``LLMService`` return ``Success`` or ``Failure`` instead of
raising, so a dead Redis or a duplicate id never surfaces inside a chat.

    >>> registry.register(provider)
    Success(None)
    >>> service.disable_provider("nope")
    Failure(NotFoundError: Unknown provider: nope)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


class ErrorKind(Enum):
    # value: (error_type, status code, worth retrying)
    VALIDATION = ("ValidationError", 400, True)
    NOT_FOUND = ("NotFoundError", 404, False)
    CONFLICT = ("ConflictError", 409, True)
    STORAGE = ("StorageError", 500, True)
    SECRET_STORE = ("SecretStoreError", 500, False)

    @property
    def error_type(self) -> str:
        return self.value[0]

    @property
    def status_code(self) -> int:
        return self.value[1]

    @property
    def recoverable(self) -> bool:
        return self.value[2]


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T

    def is_success(self) -> bool:
        return True

    def is_failure(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def __bool__(self) -> bool:
        return True

    def __repr__(self) -> str:
        return f"Success({self.value!r})"


@dataclass(frozen=True)
class Failure(Generic[E]):
    """
    A failed operation.

    Attributes:
        error: Human-readable message
        error_type: Category name, e.g. "StorageError"
        status_code: HTTP-style hint for callers that expose these results
        recoverable: Whether trying again later may succeed
        context: Identifiers that help locate the failure
    """

    error: E
    error_type: str = "UnknownError"
    status_code: int = 500
    recoverable: bool = False
    context: Optional[Dict[str, Any]] = None

    def is_success(self) -> bool:
        return False

    def is_failure(self) -> bool:
        return True

    def unwrap(self) -> Any:
        raise RuntimeError(f"Called unwrap on Failure: {self.error}")

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "error": str(self.error),
            "error_type": self.error_type,
            "status_code": self.status_code,
        }
        if self.context:
            data["context"] = self.context
        return data

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return f"Failure({self.error_type}: {self.error})"


Result = Union[Success[T], Failure[E]]


def failure(
    kind: ErrorKind, message: str, context: Optional[Dict[str, Any]] = None
) -> Failure:
    return Failure(
        error=message,
        error_type=kind.error_type,
        status_code=kind.status_code,
        recoverable=kind.recoverable,
        context=context,
    )


def validation_error(message: str, context: Optional[Dict[str, Any]] = None) -> Failure:
    return failure(ErrorKind.VALIDATION, message, context)


def not_found_error(message: str, context: Optional[Dict[str, Any]] = None) -> Failure:
    return failure(ErrorKind.NOT_FOUND, message, context)


def conflict_error(message: str, context: Optional[Dict[str, Any]] = None) -> Failure:
    return failure(ErrorKind.CONFLICT, message, context)


def storage_error(message: str, context: Optional[Dict[str, Any]] = None) -> Failure:
    return failure(ErrorKind.STORAGE, message, context)


def secret_store_error(
    message: str, context: Optional[Dict[str, Any]] = None
) -> Failure:
    return failure(ErrorKind.SECRET_STORE, message, context)
