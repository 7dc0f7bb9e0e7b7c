"""
Error types raised by the sync engine and the directory client.

Row-level errors (`OrgIdNotFound`, `InvalidRole`, `InvalidEmail`) abort a
single desired membership row. `DirectoryRequestError` is raised by the
transport once its retries are exhausted and carries the directory's message
under `.data.message`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


class SyncError(Exception):
    """Base class for errors that reject one membership row."""


class OrgIdNotFound(SyncError):
    pass


class InvalidRole(SyncError):
    pass


class InvalidEmail(SyncError):
    pass


@dataclass(frozen=True)
class ErrorData:
    message: str
    status_code: Optional[int] = None


class DirectoryRequestError(Exception):
    """
    A directory request that failed after the transport gave up.

    Attributes:
        data: `ErrorData` with the directory's message and HTTP status
        verb: HTTP verb of the failed request
        url: request path relative to the API base
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        verb: str = "",
        url: str = "",
    ):
        self.data = ErrorData(message=message, status_code=status_code)
        self.verb = verb
        self.url = url
        super().__init__(f"{verb} {url}: {message}" if verb else message)

    @property
    def status_code(self) -> Optional[int]:
        return self.data.status_code
