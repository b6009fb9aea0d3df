"""Custom exceptions for capture and streaming transcription."""


class LiveAssistError(Exception):
    """Base exception for conversation assistant errors."""

    pass


class DeviceError(LiveAssistError):
    """Exception raised when a capture device is unavailable."""

    pass


class DeviceNotFoundError(DeviceError):
    """Exception raised when the requested capture device does not exist."""

    pass


class DevicePermissionError(DeviceError):
    """Exception raised when access to a capture device is denied."""

    pass


class StreamError(LiveAssistError):
    """Exception raised for streaming transcription failures."""

    def __init__(self, message: str, auth_failure: bool = False) -> None:
        super().__init__(message)
        self.auth_failure = auth_failure


class TranscriptionError(LiveAssistError):
    """Exception raised for transcription provider errors."""

    pass
