# src/engine/job_manager.py
"""
JobRegistry: in-memory set of scan jobs, their supervising tasks and the
control commands routed to them.
"""

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from engine.broadcast import BroadcastHub
from engine.errors import JobNotFoundError, SignalDeliveryError
from engine.models import DEFAULT_LOG_BUFFER_SIZE, Job, JobStatus
from engine.process import ProcessController, ProcessExit, ProcessHandle, SignalKind
from engine import state


class JobRegistry:
    def __init__(self, controller: ProcessController, hub: BroadcastHub,
                 log_buffer_size: int = DEFAULT_LOG_BUFFER_SIZE,
                 retention_seconds: Optional[float] = None, clock=time.time):
        self.controller = controller
        self.hub = hub
        self.log_buffer_size = log_buffer_size
        self.retention_seconds = retention_seconds
        self._clock = clock
        self.jobs: Dict[str, Job] = {}
        # job_id -> (process handle, supervising task) while the process is alive
        self._running: Dict[str, Tuple[ProcessHandle, asyncio.Task]] = {}
        self._last_id = 0

    def generate_id(self) -> str:
        # epoch milliseconds, bumped past any id already handed out
        candidate = max(int(self._clock() * 1000), self._last_id + 1)
        while str(candidate) in self.jobs:
            candidate += 1
        self._last_id = candidate
        return str(candidate)

    def get(self, job_id: str) -> Job:
        job = self.jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def start(self, target: str, file_name: str, command: str, args: List[str],
                    info_lines: Iterable[str] = ()) -> Job:
        """
        Register a new running job, announce it and spawn its process.

        The scan id line is always the first line of the job's log. A process
        that fails to start leaves the job failed; nothing is raised.
        """
        self.prune()
        job_id = self.generate_id()
        job = Job(job_id=job_id, target=target, file_name=file_name,
                  log_capacity=self.log_buffer_size)
        self.jobs[job_id] = job
        logging.info(f"[job_id={job_id}] Submitted scan job. target={target} file={file_name}")

        self.hub.publish(job, f"[INFO] Scan ID: {job_id}")
        for line in info_lines:
            self.hub.publish(job, line)

        handle = await self.controller.spawn(command, args)
        if handle.spawn_error is not None:
            self._fail_to_start(job, handle.spawn_error)
            return job

        job.process = handle
        task = asyncio.create_task(self._supervise(job, handle))
        self._running[job_id] = (handle, task)
        logging.info(f"[job_id={job_id}] Started scan job. pid={handle.pid}")
        return job

    async def _supervise(self, job: Job, handle: ProcessHandle):
        try:
            async for line in handle.output():
                self.hub.publish(job, line)
            result = await handle.wait()
            self._on_exit(job, result)
        finally:
            self._running.pop(job.job_id, None)

    def _on_exit(self, job: Job, result: ProcessExit):
        if job.status is JobStatus.ABORTED:
            logging.info(f"[job_id={job.job_id}] Aborted scan exited. returncode={result.returncode}")
            self.hub.close_all(job)
            return

        job.process = None
        job.status = state.exit_status(job, result.succeeded)
        job.finished_at = datetime.now(timezone.utc)
        if result.killed:
            summary = f"** Scan killed by signal {result.signal} **"
        else:
            summary = f"** Scan finished with exit code {result.code} **"
        self.hub.publish(job, summary)
        self.hub.publish(job, f"Report file: /reports/{job.file_name}")
        self.hub.close_all(job)
        if job.status is JobStatus.FINISHED:
            logging.info(f"[job_id={job.job_id}] Completed scan job.")
        else:
            logging.error(f"[job_id={job.job_id}] Scan job failed. returncode={result.returncode}")

    def _fail_to_start(self, job: Job, reason: str):
        job.status = JobStatus.FAILED
        job.finished_at = datetime.now(timezone.utc)
        self.hub.publish(job, f"[ERR] Failed to start scan: {reason}")
        self.hub.publish(job, "** Scan failed to start **")
        self.hub.close_all(job)
        logging.error(f"[job_id={job.job_id}] Scan job failed to start: {reason}")

    def _signal(self, job: Job, kind: SignalKind, command: str):
        if not self.controller.signal(job.process, kind):
            logging.error(f"[job_id={job.job_id}] Unable to {command} scan")
            raise SignalDeliveryError(job.job_id, command)

    def pause(self, job_id: str) -> Job:
        job = self.get(job_id)
        new_status = state.check_command(job, state.PAUSE)
        self._signal(job, SignalKind.PAUSE, state.PAUSE)
        job.status = new_status
        self.hub.publish(job, "[INFO] Scan paused")
        logging.info(f"[job_id={job_id}] Paused scan job.")
        return job

    def resume(self, job_id: str) -> Job:
        job = self.get(job_id)
        new_status = state.check_command(job, state.RESUME)
        self._signal(job, SignalKind.RESUME, state.RESUME)
        job.status = new_status
        self.hub.publish(job, "[INFO] Scan resumed")
        logging.info(f"[job_id={job_id}] Resumed scan job.")
        return job

    def stop(self, job_id: str) -> Job:
        """
        Send one termination signal and mark the job aborted. The exit itself is
        observed later by the supervising task, which only closes subscribers.
        """
        job = self.get(job_id)
        new_status = state.check_command(job, state.STOP)
        was_paused = job.status is JobStatus.PAUSED
        self._signal(job, SignalKind.TERMINATE, state.STOP)
        if was_paused:
            # a stopped process only acts on SIGTERM once continued
            self.controller.signal(job.process, SignalKind.RESUME)
        job.status = new_status
        job.process = None
        job.finished_at = datetime.now(timezone.utc)
        self.hub.publish(job, "** Scan aborted by user **")
        logging.info(f"[job_id={job_id}] Aborted scan job.")
        return job

    def attach(self, job_id: str, sink) -> bool:
        return self.hub.subscribe(self.get(job_id), sink)

    def detach(self, job_id: str, sink):
        job = self.jobs.get(job_id)
        if job is not None:
            self.hub.unsubscribe(job, sink)

    def prune(self, now: datetime = None) -> List[str]:
        """Drop terminal jobs older than the retention period, if one is set."""
        if self.retention_seconds is None:
            return []
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(seconds=self.retention_seconds)
        expired = [
            job_id for job_id, job in self.jobs.items()
            if state.is_terminal(job.status)
            and job.finished_at is not None
            and job.finished_at < cutoff
            and job_id not in self._running
        ]
        for job_id in expired:
            del self.jobs[job_id]
        if expired:
            logging.info(f"Pruned {len(expired)} finished scan job(s)")
        return expired

    async def shutdown(self):
        """Terminate live processes and stop all supervising tasks."""
        running = list(self._running.items())
        for job_id, (handle, task) in running:
            job = self.jobs.get(job_id)
            if job is not None and job.is_active:
                self.controller.signal(handle, SignalKind.TERMINATE)
                if job.status is JobStatus.PAUSED:
                    self.controller.signal(handle, SignalKind.RESUME)
                job.status = JobStatus.ABORTED
                job.process = None
                job.finished_at = datetime.now(timezone.utc)
                self.hub.publish(job, "** Scan aborted: supervisor shutting down **")
            task.cancel()
            await self.controller.close(handle)
            if job is not None:
                self.hub.close_all(job)
        await asyncio.gather(*[task for _, (_, task) in running], return_exceptions=True)
        self._running.clear()
        logging.info(f"Job registry shut down. stopped={len(running)}")
