import inspect
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Iterator, Optional, TypeVar

from loguru import logger

from bulk_export_client.csv_reader import read_rows
from bulk_export_client.errors import ApiError
from bulk_export_client.models import (
    ApiResponse,
    ExportJob,
    ExportJobRequest,
    JobStatus,
)
from bulk_export_client.retry import (
    AttemptOutcome,
    Fatal,
    RetryPolicyExecutor,
    StillRunning,
    Success,
)
from bulk_export_client.transport import Connection

T = TypeVar("T")

RESOURCE = ("activities", "export")


class BulkActivityExtract:
    """Drives bulk activity export jobs from creation to a downloadable file.

    One instance can run many jobs at once: nothing about a single job is
    stored on the instance, every lifecycle keeps its export id locally.
    """

    def __init__(
        self,
        connection: Connection,
        retry: Optional[RetryPolicyExecutor] = None,
        log: Optional[Callable[[str], Any]] = None,
        on_status_change: Optional[Callable[[ExportJob], Any]] = None,
    ):
        self.connection = connection
        self.retry = retry or RetryPolicyExecutor()
        self.log = log or logger.error
        self.on_status_change = on_status_change
        self.logger = logger

    def _path(self, *parts: str) -> str:
        return self.connection.bulk_path(*RESOURCE, *parts)

    async def create(self, request: ExportJobRequest) -> ApiResponse:
        return await self.connection.post(self._path("create.json"), request.to_body())

    async def enqueue(
        self, export_id: str, options: Optional[dict[str, Any]] = None
    ) -> ApiResponse:
        return await self.connection.post(self._path(export_id, "enqueue.json"), options)

    async def status(
        self, export_id: str, options: Optional[dict[str, Any]] = None
    ) -> ApiResponse:
        return await self.connection.get(self._path(export_id, "status.json"), options)

    async def cancel(
        self, export_id: str, options: Optional[dict[str, Any]] = None
    ) -> ApiResponse:
        return await self.connection.post(self._path(export_id, "cancel.json"), options)

    async def file(
        self, export_id: str, options: Optional[dict[str, Any]] = None
    ) -> str:
        return await self.connection.get_text(self._path(export_id, "file.json"), options)

    def _report(self, message: str) -> None:
        try:
            self.log(message)
        except Exception:
            self.logger.opt(exception=True).warning("Log sink raised while reporting")

    def _api_error(self, response: ApiResponse) -> ApiError:
        error = ApiError.from_response(response)
        self._report(error.message)
        return error

    def _malformed(self, response: ApiResponse, message: str) -> ApiError:
        self._report(message)
        return ApiError(message, request_id=response.request_id)

    async def _notify(self, job: ExportJob) -> None:
        if self.on_status_change is None:
            return
        result = self.on_status_change(job)
        if inspect.isawaitable(result):
            await result

    async def status_til_completed(self, export_id: str) -> ExportJob:
        """Poll the status endpoint until the job leaves Queued/Processing"""
        last_status: Optional[str] = None

        async def check_status() -> AttemptOutcome:
            nonlocal last_status

            response = await self.status(export_id)
            if not response.success:
                return Fatal(self._api_error(response))

            if not response.result:
                return Fatal(
                    self._malformed(response, f"Status of export {export_id} had no result")
                )

            job = ExportJob.model_validate(
                {"exportId": export_id, **response.first_result()}
            )
            if job.status is None:
                return Fatal(
                    self._malformed(response, f"Status of export {export_id} had no status")
                )
            self.logger.info(f"Export {export_id} status: {job.status}")
            if job.status != last_status:
                last_status = job.status
                await self._notify(job)

            if not job.is_terminal:
                return StillRunning(request_id=response.request_id, status=job.status)
            return Success(job)

        return await self.retry.run(check_status)

    async def _cancel_quietly(self, export_id: str) -> None:
        try:
            response = await self.cancel(export_id)
        except Exception as e:
            self.logger.warning(f"Could not cancel export {export_id}: {e}")
            return
        if not response.success:
            self.logger.warning(
                f"Could not cancel export {export_id}: {response.first_error_message()}"
            )
        else:
            self.logger.info(f"Cancelled export {export_id}")

    @asynccontextmanager
    async def _cancel_unless_completed(self, export_id: str) -> AsyncIterator[None]:
        completed = False
        try:
            yield
            completed = True
        finally:
            if not completed:
                await self._cancel_quietly(export_id)

    async def queue_and_wait_til_complete(self, request: ExportJobRequest) -> str:
        """Create, enqueue and wait for an export job, returning its export id.

        Once the job exists, any failure cancels it before the failure is
        re-raised. A cancel that fails itself is only logged.
        """
        response = await self.create(request)
        if not response.success:
            raise self._api_error(response)

        export_id = response.first_result().get("exportId")
        if not export_id:
            raise self._malformed(response, "Create response did not contain an exportId")

        async with self._cancel_unless_completed(export_id):
            response = await self.enqueue(export_id)
            if not response.success:
                raise self._api_error(response)

            job = await self.status_til_completed(export_id)

        if job.status != JobStatus.completed:
            self.logger.warning(f"Export {export_id} finished as {job.status}")
        return export_id

    async def trans_file(
        self,
        action: Callable[[list[str]], T],
        export_id: str,
        has_header: bool = True,
        options: Optional[dict[str, Any]] = None,
    ) -> Iterator[T]:
        text = await self.file(export_id, options)
        return read_rows(text, action, has_header=has_header)

    async def export(
        self,
        request: ExportJobRequest,
        action: Callable[[list[str]], T],
        has_header: bool = True,
    ) -> Iterator[T]:
        export_id = await self.queue_and_wait_til_complete(request)
        return await self.trans_file(action, export_id, has_header=has_header)
