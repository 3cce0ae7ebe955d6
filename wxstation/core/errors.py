"""
Weather Station - Error types
"""


class WxStationError(Exception):
    """Base class for service errors."""


class ArchiveStoreError(WxStationError):
    """Remote archive store rejected a request or could not be reached."""

    def __init__(self, status: int | None, message: str):
        super().__init__(f"archive store error {status}: {message}")
        self.status = status
        self.message = message
