from typing import List, Optional, Sequence


class FormBridgeError(Exception):
    """Base class for every error raised by the submission pipeline."""


class ConfigurationError(FormBridgeError):
    """Process-wide configuration is missing or invalid."""


class ValidationError(FormBridgeError):
    def __init__(self, missing_fields: Sequence[str]) -> None:
        self.missing_fields: List[str] = list(missing_fields)
        super().__init__(f"Missing required fields: {', '.join(self.missing_fields)}")


class DecodeError(FormBridgeError):
    """The request body could not be parsed into fields and options."""


class ConfigFetchError(FormBridgeError):
    """The repository configuration document is unavailable or malformed."""


class RemoteOperationError(FormBridgeError):
    def __init__(self, message: str, status: Optional[int] = None) -> None:
        self.status = status
        super().__init__(message)
