import itertools
from typing import Optional

from aiohttp import web
from loguru import logger

PREFIX = "/bulk/v1/activities/export"

DEFAULT_FILE = (
    "marketoGUID,leadId,activityDate,activityTypeId\n"
    "1001,42,2024-01-02T10:00:00Z,1\n"
    "1002,43,2024-01-02T11:30:00Z,12\n"
)


class ExportServer:
    """In-process stand-in for the bulk activity export API"""

    def __init__(
        self,
        processing_polls: int = 2,
        final_status: str = "Completed",
        file_content: str = DEFAULT_FILE,
    ):
        self.processing_polls = processing_polls
        self.final_status = final_status
        self.file_content = file_content
        self.fail_create = False
        self.fail_enqueue = False
        self.fail_status = False
        self.jobs: dict[str, dict] = {}
        self.cancelled: list[str] = []
        self._ids = itertools.count(1)
        self._requests = itertools.count(1)
        self._runner: Optional[web.AppRunner] = None
        self.app = web.Application()
        self.app.router.add_post(f"{PREFIX}/create.json", self.handle_create)
        self.app.router.add_post(f"{PREFIX}/{{export_id}}/enqueue.json", self.handle_enqueue)
        self.app.router.add_get(f"{PREFIX}/{{export_id}}/status.json", self.handle_status)
        self.app.router.add_post(f"{PREFIX}/{{export_id}}/cancel.json", self.handle_cancel)
        self.app.router.add_get(f"{PREFIX}/{{export_id}}/file.json", self.handle_file)
        self.logger = logger

    def _reply(self, result: Optional[list] = None, error: Optional[str] = None):
        body = {"requestId": f"req-{next(self._requests)}", "success": error is None}
        if error is None:
            body["result"] = result or []
        else:
            body["errors"] = [{"code": "1003", "message": error}]
        return web.json_response(body)

    def _job(self, request: web.Request) -> Optional[dict]:
        return self.jobs.get(request.match_info["export_id"])

    async def handle_create(self, request):
        payload = await request.json()
        if self.fail_create or "filter" not in payload:
            self.logger.info("Rejecting export create")
            return self._reply(error="Invalid filter")

        export_id = f"EXP{next(self._ids)}"
        self.jobs[export_id] = {
            "exportId": export_id,
            "status": "Created",
            "format": payload.get("format", "CSV"),
            "polls": 0,
        }
        self.logger.info(f"Created export {export_id}")
        return self._reply([self._public(self.jobs[export_id])])

    async def handle_enqueue(self, request):
        job = self._job(request)
        if job is None or self.fail_enqueue:
            return self._reply(error="Export cannot be enqueued")
        job["status"] = "Queued"
        return self._reply([self._public(job)])

    async def handle_status(self, request):
        job = self._job(request)
        if job is None or self.fail_status:
            return self._reply(error="Export not found")

        if job["status"] in ("Queued", "Processing"):
            job["polls"] += 1
            if job["polls"] > self.processing_polls:
                job["status"] = self.final_status
                job["numberOfRecords"] = max(len(self.file_content.splitlines()) - 1, 0)
            elif job["polls"] > 1:
                job["status"] = "Processing"

        self.logger.info(f"Returning {job['status']} for {job['exportId']}")
        return self._reply([self._public(job)])

    async def handle_cancel(self, request):
        job = self._job(request)
        if job is None:
            return self._reply(error="Export not found")
        job["status"] = "Cancelled"
        self.cancelled.append(job["exportId"])
        return self._reply([self._public(job)])

    async def handle_file(self, request):
        job = self._job(request)
        if job is None or job["status"] != "Completed":
            raise web.HTTPNotFound(text="Export file not available")
        return web.Response(text=self.file_content, content_type="text/csv")

    @staticmethod
    def _public(job: dict) -> dict:
        return {key: value for key, value in job.items() if key != "polls"}

    async def start(self, port: int = 8080):
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, "localhost", port)
        await site.start()
        self.logger.info(f"Server started on port {port}")
        return site

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
