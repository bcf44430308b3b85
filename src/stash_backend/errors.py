"""Domain error taxonomy.

Every error is an HTTPException so services can raise it directly and the
handlers in `error_handlers` render the pinned `{error, message, ...}` body.
"""

from __future__ import annotations

from fastapi import HTTPException, status


class NotFound(HTTPException):
    def __init__(self, detail: str = "not found") -> None:
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class Forbidden(HTTPException):
    def __init__(self, detail: str = "forbidden") -> None:
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class BadRequest(HTTPException):
    def __init__(self, detail: str) -> None:
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class StorageError(HTTPException):
    def __init__(self, detail: str, *, key: str | None = None) -> None:
        super().__init__(status_code=status.HTTP_502_BAD_GATEWAY, detail=detail)
        self.key = key


class StorageWriteError(StorageError):
    pass


class StorageDeleteError(StorageError):
    pass
