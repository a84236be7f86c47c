from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class JobStatus(str, Enum):
    created = "Created"
    queued = "Queued"
    processing = "Processing"
    completed = "Completed"
    failed = "Failed"
    cancelled = "Cancelled"


NON_TERMINAL_STATUSES = frozenset({JobStatus.queued.value, JobStatus.processing.value})


def is_terminal(status: Optional[str]) -> bool:
    """Anything the server reports outside Queued/Processing ends the job"""
    if isinstance(status, JobStatus):
        status = status.value
    return status not in NON_TERMINAL_STATUSES


class ErrorDetail(BaseModel):
    code: Optional[str] = None
    message: str = ""

    @field_validator("code", mode="before")
    @classmethod
    def _code_as_text(cls, value: Any) -> Optional[str]:
        return None if value is None else str(value)


class ApiResponse(BaseModel):
    """Envelope every JSON endpoint of the export API answers with"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    request_id: Optional[str] = Field(default=None, alias="requestId")
    success: bool = False
    errors: list[ErrorDetail] = Field(default_factory=list)
    result: list[dict[str, Any]] = Field(default_factory=list)

    def first_error(self) -> Optional[ErrorDetail]:
        return self.errors[0] if self.errors else None

    def first_error_message(self) -> str:
        error = self.first_error()
        if error is None or not error.message:
            return "Request failed without an error message"
        return error.message

    def first_result(self) -> dict[str, Any]:
        return self.result[0] if self.result else {}


class ExportJob(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    export_id: str = Field(alias="exportId")
    status: Optional[str] = None
    format: Optional[str] = None
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    queued_at: Optional[str] = Field(default=None, alias="queuedAt")
    started_at: Optional[str] = Field(default=None, alias="startedAt")
    finished_at: Optional[str] = Field(default=None, alias="finishedAt")
    number_of_records: Optional[int] = Field(default=None, alias="numberOfRecords")
    file_size: Optional[int] = Field(default=None, alias="fileSize")
    error_msg: Optional[str] = Field(default=None, alias="errorMsg")

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)


class ExportJobRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    filter: dict[str, Any]
    options: dict[str, Any] = Field(default_factory=dict)

    def to_body(self) -> dict[str, Any]:
        body = dict(self.options)
        body["filter"] = self.filter
        return body


class RetryPolicyConfig(BaseModel):
    max_retries: int = Field(default=10, ge=0)
    initial_delay: float = Field(default=30.0, gt=0)
    max_delay: float = 60.0
    backoff_factor: float = Field(default=2.0, ge=1.0)
    timeout: Optional[float] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _check_delays(self) -> "RetryPolicyConfig":
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay must not be smaller than initial_delay")
        return self

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, retry: int) -> float:
        """Seconds to wait before retry number `retry` (zero based)"""
        return min(self.initial_delay * (self.backoff_factor**retry), self.max_delay)


class ConnectionConfig(BaseModel):
    base_url: str
    api_prefix: str = "bulk/v1"
    access_token: Optional[str] = None
    request_timeout: float = Field(default=30.0, gt=0)
