import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from loguru import logger
from pydantic import ValidationError

from drawing_api_client.errors import PayloadParseError
from drawing_api_client.models import (
    ExportedDataPointer,
    Job,
    JobKind,
    ModifyStatusResponseOutput,
    PollingConfig,
    PollOutcome,
    PollState,
    RequestState,
)


def parse_modify_output(job: Job) -> Optional[ModifyStatusResponseOutput]:
    """Parse the json document a DONE modify job carries in its output string"""
    if not job.output:
        return None
    try:
        return ModifyStatusResponseOutput.model_validate_json(job.output)
    except ValidationError as e:
        raise PayloadParseError(job.id, str(e)) from e


def parse_translation_output(job: Job) -> ExportedDataPointer:
    if job.result_external_data_ids is None:
        raise PayloadParseError(job.id, "resultExternalDataIds missing")
    return ExportedDataPointer(
        document_id=job.document_id,
        external_data_ids=job.result_external_data_ids,
    )


RESULT_PARSERS: Dict[JobKind, Callable[[Job], Any]] = {
    JobKind.modify: parse_modify_output,
    JobKind.translation: parse_translation_output,
}


class JobPoller:
    """Polls a job status until DONE, FAILED or the wall-clock timeout"""

    def __init__(
        self,
        config: Optional[PollingConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or PollingConfig()
        self.sleep = sleep
        self.clock = clock
        self.logger = logger

    def _to_job(self, payload: Any) -> Job:
        if isinstance(payload, Job):
            return payload
        try:
            return Job.model_validate(payload)
        except ValidationError as e:
            raise PayloadParseError("unknown", f"invalid job status: {e}") from e

    async def await_terminal(
        self,
        poll_fn: Callable[[], Awaitable[Any]],
        kind: Optional[JobKind] = None,
        timeout_seconds: Optional[float] = None,
        interval_ms: Optional[int] = None,
    ) -> PollOutcome:
        """Poll once per tick until the job leaves ACTIVE

        A timed out job is abandoned as is: no cancel request is sent to the server.
        """
        timeout_seconds = (
            self.config.timeout_seconds if timeout_seconds is None else timeout_seconds
        )
        interval_ms = self.config.interval_ms if interval_ms is None else interval_ms
        parser = RESULT_PARSERS.get(kind) if kind is not None else None

        start = self.clock()
        polls = 0
        job: Optional[Job] = None

        while True:
            await self.sleep(interval_ms / 1000)
            elapsed = self.clock() - start

            if polls > 0 and elapsed > timeout_seconds:
                self.logger.error(f"Job {job.id} timed out after {elapsed:.1f} seconds")
                return PollOutcome(
                    state=PollState.timed_out,
                    job=job,
                    failure_reason=f"Timed out after {elapsed:.1f} seconds",
                    polls=polls,
                    elapsed_seconds=elapsed,
                )

            self.logger.debug(f"Waited for job seconds={elapsed:.1f}")
            job = self._to_job(await poll_fn())
            polls += 1

            if job.request_state == RequestState.active:
                continue

            if job.request_state == RequestState.failed:
                self.logger.error(f"Job {job.id} failed: {job.failure_reason}")
                return PollOutcome(
                    state=PollState.failed,
                    job=job,
                    failure_reason=job.failure_reason,
                    polls=polls,
                    elapsed_seconds=elapsed,
                )

            self.logger.info(f"Job {job.id} finished as {job.request_state.value}")
            result = parser(job) if parser else job.output
            return PollOutcome(
                state=PollState.done,
                job=job,
                result=result,
                polls=polls,
                elapsed_seconds=elapsed,
            )
