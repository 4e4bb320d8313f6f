"""
Custom exceptions for the gymdm season engine.

Every error surfaced to a caller carries:
- A descriptive message
- A stable error code
- An HTTP status code
- Optional details for debugging

Degraded per-player fetches and best-effort side effects never raise
through this hierarchy; they are recorded or logged instead.
"""

from typing import Any, Dict, Optional
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for consistent API error responses."""

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    FORBIDDEN = "FORBIDDEN"
    UNAUTHORIZED = "UNAUTHORIZED"

    # Season errors
    SEASON_NOT_FOUND = "SEASON_NOT_FOUND"
    PLAYER_NOT_FOUND = "PLAYER_NOT_FOUND"
    NOT_A_MEMBER = "NOT_A_MEMBER"
    INVALID_STAGE = "INVALID_STAGE"
    INVALID_HEART_ADJUSTMENT = "INVALID_HEART_ADJUSTMENT"

    # Dispute errors
    ACTIVITY_NOT_FOUND = "ACTIVITY_NOT_FOUND"
    INVALID_CHOICE = "INVALID_CHOICE"
    INVALID_STATUS = "INVALID_STATUS"
    SELF_VOTE = "SELF_VOTE"
    VOTING_DISABLED = "VOTING_DISABLED"
    VOTING_CLOSED = "VOTING_CLOSED"
    VOTE_CONFLICT = "VOTE_CONFLICT"

    # Store errors
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"


class GymdmError(Exception):
    """
    Base exception for all gymdm engine errors.

    Attributes:
        message: Human-readable error message
        code: Error code from ErrorCode enum
        status_code: HTTP status code for API responses
        details: Optional dictionary with additional error details
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API response."""
        result: Dict[str, Any] = {
            "error": {
                "code": self.code.value,
                "message": self.message,
            }
        }
        if self.details:
            result["error"]["details"] = self.details
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code.value}, message={self.message!r})"


# ============================================================================
# Validation Errors (400)
# ============================================================================

class ValidationError(GymdmError):
    """Raised when input validation fails."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ) -> None:
        error_details = details or {}
        if field:
            error_details["field"] = field
        super().__init__(
            message=message,
            code=code,
            status_code=400,
            details=error_details,
        )


class InvalidVoteChoiceError(ValidationError):
    """Raised when a vote choice is not legit, sus or remove."""

    def __init__(self, choice: Any) -> None:
        super().__init__(
            message=f"Invalid vote choice: {choice!r}",
            field="choice",
            code=ErrorCode.INVALID_CHOICE,
        )


class InvalidOverrideStatusError(ValidationError):
    """Raised when an override targets a status other than approved/rejected."""

    def __init__(self, status: Any) -> None:
        super().__init__(
            message=f"Invalid override status: {status!r}",
            field="new_status",
            code=ErrorCode.INVALID_STATUS,
        )


class SelfVoteError(ValidationError):
    """Raised when a player votes on their own activity."""

    def __init__(self, activity_id: str) -> None:
        super().__init__(
            message="You cannot vote on your own activity",
            details={"activity_id": activity_id},
            code=ErrorCode.SELF_VOTE,
        )


class VotingDisabledError(ValidationError):
    """Raised when the season is too small for peer voting."""

    def __init__(self, member_count: int, min_members: int) -> None:
        super().__init__(
            message=f"Voting requires at least {min_members} players",
            details={"member_count": member_count, "min_members": min_members},
            code=ErrorCode.VOTING_DISABLED,
        )


class InvalidHeartAdjustmentError(ValidationError):
    """Raised when a manual heart adjustment is out of range."""

    def __init__(self, delta: Any, max_delta: int) -> None:
        super().__init__(
            message=f"Heart adjustment must be between -{max_delta} and {max_delta} and non-zero",
            field="delta",
            details={"delta": delta},
            code=ErrorCode.INVALID_HEART_ADJUSTMENT,
        )


# ============================================================================
# Not Found Errors (404)
# ============================================================================

class NotFoundError(GymdmError):
    """Raised when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        message = f"{resource_type} with ID '{resource_id}' not found"
        error_details = details or {}
        error_details["resource_type"] = resource_type
        error_details["resource_id"] = resource_id
        super().__init__(
            message=message,
            code=ErrorCode.NOT_FOUND,
            status_code=404,
            details=error_details,
        )


class SeasonNotFoundError(NotFoundError):
    """Raised when a season is not found."""

    def __init__(self, season_id: str) -> None:
        super().__init__(resource_type="Season", resource_id=season_id)
        self.code = ErrorCode.SEASON_NOT_FOUND


class ActivityNotFoundError(NotFoundError):
    """Raised when an activity is not found."""

    def __init__(self, activity_id: str) -> None:
        super().__init__(resource_type="Activity", resource_id=activity_id)
        self.code = ErrorCode.ACTIVITY_NOT_FOUND


class PlayerNotFoundError(NotFoundError):
    """Raised when a player is not part of the season."""

    def __init__(self, player_id: str) -> None:
        super().__init__(resource_type="Player", resource_id=player_id)
        self.code = ErrorCode.PLAYER_NOT_FOUND


# ============================================================================
# Authorization Errors (401/403)
# ============================================================================

class UnauthorizedError(GymdmError):
    """Raised when the caller did not identify themselves."""

    def __init__(self, message: str = "Missing user") -> None:
        super().__init__(
            message=message,
            code=ErrorCode.UNAUTHORIZED,
            status_code=401,
        )


class ForbiddenError(GymdmError):
    """Raised when the caller lacks permission for an action."""

    def __init__(
        self,
        message: str = "Owner only",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message,
            code=ErrorCode.FORBIDDEN,
            status_code=403,
            details=details,
        )


class NotSeasonMemberError(ForbiddenError):
    """Raised when the caller is not a player in the season."""

    def __init__(self, season_id: str) -> None:
        super().__init__(
            message="Not a season member",
            details={"season_id": season_id},
        )
        self.code = ErrorCode.NOT_A_MEMBER


# ============================================================================
# Conflict Errors (409)
# ============================================================================

class ConflictError(GymdmError):
    """Raised when there's a state conflict."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message,
            code=ErrorCode.CONFLICT,
            status_code=409,
            details=details,
        )


class VotingClosedError(ConflictError):
    """Raised when a vote arrives after the dispute is decided or expired."""

    def __init__(self, activity_id: str, reason: str) -> None:
        super().__init__(
            message="Voting is closed for this activity",
            details={"activity_id": activity_id, "reason": reason},
        )
        self.code = ErrorCode.VOTING_CLOSED


class VoteConflictError(ConflictError):
    """Raised when concurrent writers kept invalidating the dispute state."""

    def __init__(self, activity_id: str, attempts: int) -> None:
        super().__init__(
            message="The activity changed while the vote was applied, please retry",
            details={"activity_id": activity_id, "attempts": attempts},
        )
        self.code = ErrorCode.VOTE_CONFLICT


class InvalidStageError(ConflictError):
    """Raised when a season operation is not allowed in its current stage."""

    def __init__(self, season_id: str, stage: str, expected: str) -> None:
        super().__init__(
            message=f"Season is {stage}, expected {expected}",
            details={"season_id": season_id, "stage": stage, "expected": expected},
        )
        self.code = ErrorCode.INVALID_STAGE


# ============================================================================
# Availability Errors (503)
# ============================================================================

class StoreUnavailableError(GymdmError):
    """Raised when the backing store cannot honor the request."""

    def __init__(
        self,
        message: str = "Backing store is unavailable",
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        error_details = details or {}
        if operation:
            error_details["operation"] = operation
        super().__init__(
            message=message,
            code=ErrorCode.STORE_UNAVAILABLE,
            status_code=503,
            details=error_details,
        )
