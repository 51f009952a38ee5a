"""Error codes and exceptions shared by the engine and the control API."""
from enum import Enum

from fastapi.responses import JSONResponse
from pydantic import BaseModel

from crashgame.config import settings


class ErrorCode(str, Enum):
    """Error codes surfaced to callers."""

    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    INVALID_REQUEST = "INVALID_REQUEST"
    CONFIG_INVARIANT_VIOLATION = "CONFIG_INVARIANT_VIOLATION"
    INVALID_STATE_TRANSITION = "INVALID_STATE_TRANSITION"
    BET_REJECTED = "BET_REJECTED"
    NO_ACTIVE_ROUND = "NO_ACTIVE_ROUND"
    PERSISTENCE_FAILURE = "PERSISTENCE_FAILURE"
    CRYPTO_UNAVAILABLE = "CRYPTO_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


ERROR_HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.INVALID_ARGUMENT: 400,
    ErrorCode.INVALID_REQUEST: 400,
    ErrorCode.CONFIG_INVARIANT_VIOLATION: 409,
    ErrorCode.INVALID_STATE_TRANSITION: 409,
    ErrorCode.BET_REJECTED: 409,
    ErrorCode.NO_ACTIVE_ROUND: 409,
    ErrorCode.PERSISTENCE_FAILURE: 503,
    ErrorCode.CRYPTO_UNAVAILABLE: 503,
    ErrorCode.INTERNAL_ERROR: 500,
}

ERROR_RECOVERABLE: dict[ErrorCode, bool] = {
    ErrorCode.INVALID_ARGUMENT: False,
    ErrorCode.INVALID_REQUEST: False,
    ErrorCode.CONFIG_INVARIANT_VIOLATION: False,
    ErrorCode.INVALID_STATE_TRANSITION: True,
    ErrorCode.BET_REJECTED: True,
    ErrorCode.NO_ACTIVE_ROUND: True,
    ErrorCode.PERSISTENCE_FAILURE: True,
    ErrorCode.CRYPTO_UNAVAILABLE: False,
    ErrorCode.INTERNAL_ERROR: True,
}


class ErrorBody(BaseModel):
    """Error body shape."""

    code: str
    message: str
    recoverable: bool


class ErrorResponse(BaseModel):
    """Full error response."""

    protocolVersion: str = settings.protocol_version
    error: ErrorBody


class GameError(Exception):
    """Base game error that maps to a protocol error response."""

    def __init__(self, code: ErrorCode, message: str | None = None):
        self.code = code
        self.message = message or f"Error: {code.value}"
        self.status_code = ERROR_HTTP_STATUS[code]
        self.recoverable = ERROR_RECOVERABLE[code]
        super().__init__(self.message)

    def to_response(self) -> JSONResponse:
        """Convert to a JSONResponse."""
        return JSONResponse(
            status_code=self.status_code,
            content=ErrorResponse(
                error=ErrorBody(
                    code=self.code.value,
                    message=self.message,
                    recoverable=self.recoverable,
                )
            ).model_dump(),
        )


class InvalidArgument(GameError, ValueError):
    """Malformed input to a formula, RNG or configuration operation."""

    def __init__(self, message: str | None = None):
        super().__init__(ErrorCode.INVALID_ARGUMENT, message)


class ConfigurationInvariantViolation(GameError):
    """A phase mutation would break ordering or cardinality rules."""

    def __init__(self, message: str | None = None):
        super().__init__(ErrorCode.CONFIG_INVARIANT_VIOLATION, message)


class InvalidStateTransition(GameError):
    """A round was asked to move backwards or skip a state."""

    def __init__(self, message: str | None = None):
        super().__init__(ErrorCode.INVALID_STATE_TRANSITION, message)


class BetRejected(GameError):
    """A bet or cash-out request is not valid right now."""

    def __init__(self, message: str | None = None):
        super().__init__(ErrorCode.BET_REJECTED, message)


class PersistenceFailure(GameError):
    """Storage read/write failure. Recovered inside the storage layer."""

    def __init__(self, message: str | None = None):
        super().__init__(ErrorCode.PERSISTENCE_FAILURE, message)


class CryptoUnavailable(GameError):
    """Secure hashing or randomness is missing and degradation is not allowed."""

    def __init__(self, message: str | None = None):
        super().__init__(ErrorCode.CRYPTO_UNAVAILABLE, message)
