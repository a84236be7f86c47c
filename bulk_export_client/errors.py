from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from bulk_export_client.models import ApiResponse
    from bulk_export_client.retry import StillRunning


class BulkExportError(Exception):
    """Base class for failures surfaced by the export client"""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.request_id = request_id


class ApiError(BulkExportError):
    """The server answered with success=false"""

    @classmethod
    def from_response(cls, response: "ApiResponse") -> "ApiError":
        error = response.first_error()
        return cls(
            response.first_error_message(),
            code=error.code if error else None,
            request_id=response.request_id,
        )


class RetryExhaustedError(BulkExportError):
    """The job was still running after the last allowed status poll"""

    def __init__(self, last_signal: "StillRunning", attempts: int):
        super().__init__(
            f"Export still {last_signal.status} after {attempts} status checks",
            code=last_signal.code,
            request_id=last_signal.request_id,
        )
        self.last_signal = last_signal
        self.attempts = attempts
