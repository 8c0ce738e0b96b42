from fastapi import status


class ScoringError(Exception):
    """Base class for failures surfaced to clients as ``{kind, message}``."""

    kind = "ScoringError"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class Unauthorized(ScoringError):
    kind = "Unauthorized"
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(ScoringError):
    kind = "NotFound"
    status_code = status.HTTP_404_NOT_FOUND


class ValidationError(ScoringError):
    kind = "ValidationError"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class PolicyError(ScoringError):
    kind = "PolicyError"
    status_code = status.HTTP_409_CONFLICT


class ConcurrencyConflict(ScoringError):
    kind = "ConcurrencyConflict"
    status_code = status.HTTP_409_CONFLICT


# Kinds for plain HTTPExceptions raised outside the scoring services (auth, routing)
HTTP_STATUS_KINDS = {
    status.HTTP_401_UNAUTHORIZED: Unauthorized.kind,
    status.HTTP_403_FORBIDDEN: Unauthorized.kind,
    status.HTTP_404_NOT_FOUND: NotFound.kind,
    status.HTTP_409_CONFLICT: ConcurrencyConflict.kind,
}


def kind_for_status(status_code: int) -> str:
    if status_code in HTTP_STATUS_KINDS:
        return HTTP_STATUS_KINDS[status_code]
    if status_code < status.HTTP_500_INTERNAL_SERVER_ERROR:
        return ValidationError.kind
    return ScoringError.kind
