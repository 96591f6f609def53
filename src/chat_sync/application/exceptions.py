from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class NotFoundError(AppError):
    pass


class ForbiddenError(AppError):
    pass


class ConflictError(AppError):
    pass


class ValidationError(AppError):
    pass


class TransportError(AppError):
    """A REST call failed in a way the caller may retry."""

    def __init__(self, detail: str = "", status_code: int | None = None) -> None:
        super().__init__(detail)
        self.status_code = status_code
