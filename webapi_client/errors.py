from typing import Optional

TOO_MANY_REQUESTS = 429


class WebApiError(Exception):
    """Error surfaced to callers of the client, carrying a readable message"""


class ConfigError(Exception):
    """Missing or invalid configuration or trust material"""


class OperationError(Exception):
    """Failure of a single request to a worker"""


class StatusError(OperationError):
    def __init__(self, status: int, url: Optional[str] = None):
        self.status = status
        self.url = url
        message = f"Err with code: {status}"
        if url:
            message = f"{message} from {url}"
        super().__init__(message)

    @property
    def is_overload(self) -> bool:
        return self.status == TOO_MANY_REQUESTS


class MessageError(OperationError):
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)
