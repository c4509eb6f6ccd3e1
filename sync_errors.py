"""
Error types raised by the sheet to HubDB sync
"""

from typing import Optional


class SyncError(Exception):
    """Base class for sync failures"""


class TransportFailure(SyncError):
    """The endpoint could not be reached or answered with a non-2xx status"""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ''):
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    @property
    def row_message(self) -> str:
        """Text written into the sync message column of affected rows"""
        if self.status_code is not None:
            return f"HTTP {self.status_code}: {self.body}"
        return f"Exception: {self}"


class MalformedResponse(TransportFailure):
    """The endpoint answered 2xx but the body was not the expected JSON shape"""

    @property
    def row_message(self) -> str:
        return f"Malformed response: {self}"


class PersistenceError(SyncError):
    """Reading or writing the stored snapshot failed"""
