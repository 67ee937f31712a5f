"""Translate core rejections into HTTP errors."""

from fastapi import HTTPException, status

from ..errors import Rejected, RejectionReason

REJECTION_STATUS = {
    RejectionReason.INVALID_FIELD: status.HTTP_400_BAD_REQUEST,
    RejectionReason.INVALID_VALUE: status.HTTP_400_BAD_REQUEST,
    RejectionReason.INVALID_ASSIGNEE: status.HTTP_400_BAD_REQUEST,
    RejectionReason.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    RejectionReason.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    RejectionReason.CONFLICT: status.HTTP_409_CONFLICT,
}


def unwrap(result):
    """Return ``result`` unchanged, or raise the HTTP error for a rejection."""
    if isinstance(result, Rejected):
        raise HTTPException(
            status_code=REJECTION_STATUS[result.reason],
            detail={"reason": result.reason.value, "message": result.detail},
        )
    return result
