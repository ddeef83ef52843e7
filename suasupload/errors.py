from __future__ import annotations


class UploadError(RuntimeError):
    """Base class for failures surfaced to the operator.

    ``user_message`` is what gets shown; ``str(error)`` may carry more detail
    for the logs.
    """

    user_message = "Something went wrong - please try again."

    def __init__(self, detail: str | None = None, *, user_message: str | None = None) -> None:
        if user_message is not None:
            self.user_message = user_message
        super().__init__(detail or self.user_message)


class SigningUnavailable(UploadError):
    user_message = "Upload service unavailable - please contact administrator."


class StorageUnavailable(UploadError):
    user_message = "Backend storage cannot be found. Please contact the administrator."


class ValidationFailed(UploadError):
    user_message = "Please check your input and try again."


class TransferFailed(UploadError):
    user_message = "Upload failed - please try again later."
