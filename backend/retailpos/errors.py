# Overview: Business error taxonomy shared by services and routes.

"""
Business errors carry an HTTP status, a stable machine code, a human
message, and optional structured details. Routes turn them into
`{"code", "message", "details"}` bodies; the terminal client turns those
bodies back into ApiError.
"""

from __future__ import annotations

from flask import jsonify


class BusinessError(Exception):
    """Base for expected, client-visible failures."""

    status = 400
    code = "BAD_REQUEST"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status: int | None = None,
        details: dict | None = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status is not None:
            self.status = status
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body

    def to_response(self):
        return jsonify(self.to_dict()), self.status


class NotFoundError(BusinessError):
    status = 404
    code = "NOT_FOUND"


class ConflictError(BusinessError):
    status = 409
    code = "CONFLICT"


class UnauthorizedError(BusinessError):
    status = 401
    code = "UNAUTHORIZED"


class ForbiddenError(BusinessError):
    status = 403
    code = "FORBIDDEN"


def internal_error_response():
    return jsonify({"code": "INTERNAL_ERROR", "message": "Internal server error"}), 500
