import asyncio

from export_server import ExportServer
from bulk_export_client.bulk_activity_extract import BulkActivityExtract
from bulk_export_client.models import (
    ConnectionConfig,
    ExportJobRequest,
    RetryPolicyConfig,
)
from bulk_export_client.retry import RetryPolicyExecutor
from bulk_export_client.transport import Connection


async def status_changed(job):
    print(f"Export {job.export_id} is now {job.status}")


async def main():
    PORT = 8000
    server = ExportServer(processing_polls=3)
    await server.start(port=PORT)
    print(f"Server started on http://localhost:{PORT}")

    retry = RetryPolicyExecutor(
        RetryPolicyConfig(max_retries=10, initial_delay=0.5, max_delay=2.0)
    )
    request = ExportJobRequest(
        filter={"createdAt": {"startAt": "2024-01-01", "endAt": "2024-01-31"}},
        options={"format": "CSV"},
    )

    async with Connection(ConnectionConfig(base_url=f"http://localhost:{PORT}")) as connection:
        extract = BulkActivityExtract(
            connection, retry=retry, on_status_change=status_changed
        )
        try:
            rows = await extract.export(request, lambda fields: fields)
            for row in rows:
                print(f"Activity: {row}")
        except Exception as e:
            print(f"Error occurred: {e}")

    await server.stop()


if __name__ == "__main__":
    asyncio.run(main())
