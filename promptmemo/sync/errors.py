"""Exceptions raised by the remote transport and document codec."""

from __future__ import annotations

from typing import Optional


class PromptMemoError(Exception):
    """Base class for all PromptMemo sync errors."""


class ValidationError(PromptMemoError):
    """Malformed prompt document or JSON."""


class AuthError(PromptMemoError):
    """Missing or rejected access token (HTTP 401)."""

    status = 401


class ApiError(PromptMemoError):
    """Non-2xx response other than 401, or an unexpected response body."""

    def __init__(self, message: str, status: Optional[int] = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body

    @property
    def not_found(self) -> bool:
        return self.status == 404


class NetworkError(PromptMemoError):
    """The request never produced an HTTP response."""


__all__ = ["PromptMemoError", "ValidationError", "AuthError", "ApiError", "NetworkError"]
