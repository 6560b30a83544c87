# errors.py
from fastapi import status


class SwapError(Exception):
    """Base for every refusal of a single negotiation action.

    None of these are fatal; each one means the requested action changed nothing.
    """
    kind = "SwapError"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind)
        self.message = message or self.kind


class NotFound(SwapError):
    kind = "NotFound"
    status_code = status.HTTP_404_NOT_FOUND


class InvalidSlotState(SwapError):
    kind = "InvalidSlotState"
    status_code = status.HTTP_409_CONFLICT


class NotOwner(SwapError):
    kind = "NotOwner"
    status_code = status.HTTP_403_FORBIDDEN


class Forbidden(SwapError):
    kind = "Forbidden"
    status_code = status.HTTP_403_FORBIDDEN


class SelfSwap(SwapError):
    kind = "SelfSwap"
    status_code = status.HTTP_400_BAD_REQUEST


class RequestNotPending(SwapError):
    kind = "RequestNotPending"
    status_code = status.HTTP_409_CONFLICT


class SlotLocked(SwapError):
    kind = "SlotLocked"
    status_code = status.HTTP_409_CONFLICT


class InvalidTimeRange(SwapError):
    kind = "InvalidTimeRange"
    status_code = 422


class LockTimeout(Exception):
    """A row lock could not be taken within the configured wait."""
