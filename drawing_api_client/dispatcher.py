import asyncio
import math
from typing import Any, Awaitable, Callable, Optional

from loguru import logger

from drawing_api_client.errors import ApiError
from drawing_api_client.models import RetryConfig, RetryState

UNKNOWN_API_ERROR = "Unknown Onshape API Error"


def classify_response(
    status: Optional[int],
    reason: Optional[str] = None,
    body: Any = None,
    error: Optional[BaseException] = None,
) -> Optional[ApiError]:
    """Return an ApiError for a failed response, None for a 2xx one"""
    if error is None and status is not None and 100 <= status < 300:
        return None

    message = reason or (str(error) if error is not None else "") or UNKNOWN_API_ERROR
    return ApiError(status or None, message, body if body else "NO_BODY")


class RateLimitedDispatcher:
    """Runs request attempts, backing off exponentially on rate-limit responses

    The sleep time grows across every call made through one dispatcher and is
    never reset, so sustained pressure from the server keeps the client slow.
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config or RetryConfig()
        self.sleep = sleep
        self.logger = logger
        self.state = RetryState(sleep_ms=self.config.initial_sleep_ms)

    @property
    def sleep_ms(self) -> int:
        return self.state.sleep_ms

    def _should_continue_attempt(self, attempt: int) -> bool:
        return attempt <= self.config.max_attempts

    async def _back_off(self) -> None:
        await self.sleep(self.state.sleep_ms / 1000)
        self.state.sleep_ms = math.floor(
            self.state.sleep_ms * self.config.sleep_multiplier
        )
        self.state.error_count += 1

    async def execute(self, request_thunk: Callable[[], Awaitable[Any]]) -> Any:
        """Run request_thunk until it succeeds or may not be retried

        request_thunk must sign and send exactly one request per invocation.
        """
        self.state.attempt = 1
        while True:
            try:
                return await request_thunk()
            except ApiError as e:
                if e.status != self.config.rate_limited_status:
                    raise

                self.logger.error(
                    f"Handling error code {e.status} count={self.state.error_count} "
                    f"sleep={self.state.sleep_ms} ms"
                )
                if not self._should_continue_attempt(self.state.attempt + 1):
                    raise
                self.state.attempt += 1
                await self._back_off()
