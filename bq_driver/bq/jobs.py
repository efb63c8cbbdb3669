from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Dict, Optional, Sequence, Union

from google.cloud import bigquery

from ..app_model import Job, JobPhase, JobResult, PollState, PollStatus
from ..errors import PollTimeoutError, RemoteJobError
from ..usage import UsageHook, job_statistics
from .client import build_job_config, table_reference

logger = logging.getLogger(__name__)

BACKOFF_STEP_MS = 200


class JobPoller:
    """Drives one BigQuery job from submission to a terminal state.

    Phases go SUBMITTED -> POLLING -> SUCCEEDED | FAILED | TIMED_OUT. Only a
    RUNNING observation is retried; submission failures and terminal errors
    surface immediately. ``sleep`` and ``clock`` are pluggable so the wait can
    be driven by whatever scheduler hosts the driver.
    """

    def __init__(
        self,
        client: bigquery.Client,
        poll_timeout_ms: int,
        poll_max_interval_ms: int,
        usage_hook: Optional[UsageHook] = None,
        sleep: Callable[[float], Any] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.poll_timeout_ms = poll_timeout_ms
        self.poll_max_interval_ms = poll_max_interval_ms
        self.usage_hook = usage_hook
        self.sleep = sleep
        self.clock = clock

    def submit(
        self,
        sql: str,
        params: Sequence[Any] = (),
        destination: Optional[str] = None,
        default_dataset: Optional[str] = None,
        location: Optional[str] = None,
    ) -> Job:
        destination_ref = table_reference(self.client, destination) if destination else None
        job_config = build_job_config(params, destination_ref, default_dataset)
        handle = self.client.query(sql, job_config=job_config, location=location)
        job = Job(
            job_id=handle.job_id,
            handle=handle,
            sql=sql,
            params=list(params),
            destination=destination,
        )
        logger.debug("Submitted BigQuery job %s", job.job_id)
        return job

    def track(self, handle: Any) -> Job:
        return Job(job_id=handle.job_id, handle=handle)

    def poll_once(self, job: Job) -> PollState:
        handle = job.handle
        handle.reload()
        if handle.state != "DONE":
            return PollState(PollStatus.RUNNING)
        error = handle.error_result
        if error:
            message = error.get("message") if isinstance(error, dict) else None
            return PollState(PollStatus.DONE_ERROR, message=message or json.dumps(error, default=str))
        return PollState(PollStatus.DONE_OK, statistics=job_statistics(handle))

    def backoff_ms(self, iteration: int) -> int:
        return min(self.poll_max_interval_ms, BACKOFF_STEP_MS * iteration)

    def await_terminal(
        self,
        job: Job,
        want_results: bool = True,
        options: Optional[Dict[str, Any]] = None,
    ) -> Union[JobResult, bool]:
        options = options or {}
        started = self.clock()
        job.phase = JobPhase.POLLING
        iteration = 0
        while (self.clock() - started) * 1000 <= self.poll_timeout_ms:
            state = self.poll_once(job)
            if state.done:
                if state.status is PollStatus.DONE_ERROR:
                    job.phase = JobPhase.FAILED
                    logger.debug("BigQuery job %s failed: %s", job.job_id, state.message)
                    raise RemoteJobError(state.message or "", job_id=job.job_id)
                job.phase = JobPhase.SUCCEEDED
                if self.usage_hook is not None:
                    self.usage_hook(state.statistics or {}, options)
                return self.fetch_results(job) if want_results else True
            delay_ms = self.backoff_ms(iteration)
            logger.debug("BigQuery job %s still running, next poll in %sms", job.job_id, delay_ms)
            self.sleep(delay_ms / 1000)
            iteration += 1

        job.phase = JobPhase.TIMED_OUT
        self._cancel(job)
        raise PollTimeoutError(self.poll_timeout_ms, job_id=job.job_id)

    def fetch_results(self, job: Job) -> JobResult:
        iterator = job.handle.result()
        rows = [dict(row.items()) for row in iterator]
        schema = getattr(iterator, "schema", None) or []
        return JobResult(
            rows=rows,
            columns=[field.name for field in schema],
            column_types={field.name: field.field_type for field in schema},
        )

    def _cancel(self, job: Job) -> None:
        try:
            job.handle.cancel()
        except Exception as exc:
            logger.warning("Cancelling timed out BigQuery job %s failed: %s", job.job_id, exc)
