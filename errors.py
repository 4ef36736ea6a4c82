"""Shared error codes, user-facing messages and exception types."""

from __future__ import annotations

PERMISSION_DENIED = "PERMISSION_DENIED"
NETWORK_ERROR = "NETWORK_ERROR"
AUTH_FAILED = "AUTH_FAILED"
RATE_LIMITED = "RATE_LIMITED"
NO_ACTIVE_TARGET = "NO_ACTIVE_TARGET"
ASR_PROTOCOL_ERROR = "ASR_PROTOCOL_ERROR"
AUDIO_DEVICE_ERROR = "AUDIO_DEVICE_ERROR"
ENCODING_FAILED = "ENCODING_FAILED"
VAD_ERROR = "VAD_ERROR"

ERROR_MESSAGES = {
    PERMISSION_DENIED: "Microphone or accessibility permission is required.",
    NETWORK_ERROR: "Network failed, please retry.",
    AUTH_FAILED: "API key is invalid.",
    RATE_LIMITED: "Too many requests, try again later.",
    NO_ACTIVE_TARGET: "No active input target, result kept in clipboard.",
    ASR_PROTOCOL_ERROR: "ASR response format is invalid.",
    AUDIO_DEVICE_ERROR: "No usable microphone found.",
    ENCODING_FAILED: "Audio could not be encoded.",
    VAD_ERROR: "Voice activity detection failed.",
}


class DictationError(Exception):
    code = ASR_PROTOCOL_ERROR

    @property
    def user_message(self) -> str:
        return ERROR_MESSAGES.get(self.code, str(self))


# ----------------------------------------------------------------------
# Capture
# ----------------------------------------------------------------------


class AudioError(DictationError):
    code = AUDIO_DEVICE_ERROR


class NoInputDevice(AudioError):
    def __init__(self) -> None:
        super().__init__("no audio input device found")


class NoInputConfig(AudioError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"failed to get default input config: {detail}")


class CaptureFailed(AudioError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"audio capture failed: {detail}")


class AlreadyRecording(AudioError):
    def __init__(self) -> None:
        super().__init__("already recording")


class NotRecording(AudioError):
    def __init__(self) -> None:
        super().__init__("capture not started")


# ----------------------------------------------------------------------
# Codec / VAD
# ----------------------------------------------------------------------


class EncodingError(DictationError):
    code = ENCODING_FAILED


class VadError(DictationError):
    code = VAD_ERROR


# ----------------------------------------------------------------------
# Remote services
# ----------------------------------------------------------------------


class ServiceError(DictationError):
    code = NETWORK_ERROR


class NetworkError(ServiceError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"network error: {detail}")


class RequestTimeout(ServiceError):
    def __init__(self) -> None:
        super().__init__("request timeout")


class AuthFailed(ServiceError):
    code = AUTH_FAILED

    def __init__(self) -> None:
        super().__init__("authentication failed: check API key")


class RateLimited(ServiceError):
    code = RATE_LIMITED

    def __init__(self, retry_after_sec: int) -> None:
        super().__init__(f"rate limited, retry after {retry_after_sec}s")
        self.retry_after_sec = retry_after_sec


class ApiStatusError(ServiceError):
    def __init__(self, status: int, message: str) -> None:
        super().__init__(f"API error ({status}): {message}")
        self.status = status
        self.message = message


class InvalidResponse(ServiceError):
    code = ASR_PROTOCOL_ERROR

    def __init__(self, detail: str) -> None:
        super().__init__(f"invalid response: {detail}")


def is_retryable(exc: BaseException) -> bool:
    """Whether the generic backoff loop should try again after ``exc``.

    Rate limiting is not retryable here: it has its own counter.
    """
    if isinstance(exc, (NetworkError, RequestTimeout)):
        return True
    if isinstance(exc, ApiStatusError):
        return exc.status >= 500
    return False
