import asyncio

from drawing_api_client.drawing_api_client import ApiClient
from drawing_api_client.drawing_utils import (
    build_note_request,
    count_results,
    create_modify_job,
    parse_drawing_uri,
    wait_for_modify_to_finish,
)
from drawing_api_client.errors import DrawingApiError
from drawing_api_client.models import PollingConfig, RetryConfig, StackCredential
from drawing_server import DrawingServer

ACCESS_KEY = "example-access-key"
SECRET_KEY = "example-secret-key"
DRAWING_PATH = (
    "/documents/0123456789abcdef01234567/w/89abcdef0123456789abcdef"
    "/e/fedcba9876543210fedcba98"
)


async def main():
    PORT = 8000
    server = DrawingServer(
        {ACCESS_KEY: SECRET_KEY}, completion_polls=3, rate_limited_requests=1
    )
    await server.start(port=PORT)
    print(f"Server started on http://localhost:{PORT}")

    credential = StackCredential(
        url=f"http://localhost:{PORT}/", accessKey=ACCESS_KEY, secretKey=SECRET_KEY
    )
    client = ApiClient(
        credential,
        script_name="example",
        retry_config=RetryConfig(initial_sleep_ms=500),
        polling_config=PollingConfig(timeout_seconds=10, interval_ms=500),
    )

    try:
        args = parse_drawing_uri(f"http://localhost:{PORT}{DRAWING_PATH}")
        job_id = await create_modify_job(
            client, args, build_note_request("Hello drawing", (2.0, 3.0, 0.0))
        )
        output = await wait_for_modify_to_finish(client, job_id)
        succeeded, failed = count_results(output)
        print(f"Created {succeeded} notes, {failed} failed")
        print(f"Backoff is now {client.dispatcher.sleep_ms} ms")
    except DrawingApiError as e:
        print(f"Error occurred: {e}")
    finally:
        await client.close()
        await server.stop()


if __name__ == "__main__":
    asyncio.run(main())
