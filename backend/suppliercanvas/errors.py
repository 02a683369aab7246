from typing import Optional


class SupplierCanvasError(Exception):
    pass


class UpstreamFetchError(SupplierCanvasError):
    """Non-2xx response or transport failure talking to a platform or the scraping backend."""

    def __init__(self, platform: str, message: str, *, status: Optional[int] = None) -> None:
        self.platform = platform
        self.status = status
        super().__init__(f"{platform}: {message}")


class UpstreamParseError(SupplierCanvasError):
    """Expected structure not found in an otherwise successful response."""

    def __init__(self, platform: str, message: str) -> None:
        self.platform = platform
        super().__init__(f"{platform}: {message}")


class QueueTaskError(SupplierCanvasError):
    pass


class InvalidSearchRequest(SupplierCanvasError):
    pass
