"""Custom exception classes."""

from typing import Optional

from fastapi import HTTPException, status


class NotFound(HTTPException):
    """Exception for resource not found."""

    def __init__(self, resource: str = "Resource"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found",
        )


class BadRequest(HTTPException):
    """Exception for bad request."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
        )


class UpstreamUnavailable(HTTPException):
    """Exception for a failed upstream list fetch."""

    def __init__(self, code: str, detail: str):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"code": code, "message": detail},
        )


class ApiError(Exception):
    """
    Exception for upstream API failures.

    code is one of NETWORK_ERROR, TIMEOUT, UNAUTHORIZED, FORBIDDEN,
    BAD_REQUEST, SERVER_ERROR, BIZ_ERROR, UNKNOWN.
    """

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN",
        status: Optional[int] = None,
        biz_code: Optional[int] = None,
    ):
        self.message = message
        self.code = code
        self.status = status
        self.biz_code = biz_code
        super().__init__(message)
