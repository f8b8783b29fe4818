# src/engine/state.py
"""
Job status transitions.

    running --pause--> paused --resume--> running
    running|paused --stop--> aborted
    running|paused --exit 0--> finished
    running|paused --exit != 0 / spawn error--> failed

Terminal states never change. An exit observed after a stop leaves the job
aborted.
"""
from typing import Dict, FrozenSet, Tuple

from engine.errors import InvalidStateError
from engine.models import Job, JobStatus

TERMINAL_STATES: FrozenSet[JobStatus] = frozenset({
    JobStatus.ABORTED,
    JobStatus.FAILED,
    JobStatus.FINISHED,
})

PAUSE = "pause"
RESUME = "resume"
STOP = "stop"

# command -> (statuses it is legal from, resulting status)
COMMAND_TRANSITIONS: Dict[str, Tuple[FrozenSet[JobStatus], JobStatus]] = {
    PAUSE: (frozenset({JobStatus.RUNNING}), JobStatus.PAUSED),
    RESUME: (frozenset({JobStatus.PAUSED}), JobStatus.RUNNING),
    STOP: (frozenset({JobStatus.RUNNING, JobStatus.PAUSED}), JobStatus.ABORTED),
}


def is_terminal(status: JobStatus) -> bool:
    return status in TERMINAL_STATES


def check_command(job: Job, command: str) -> JobStatus:
    """
    Return the status `command` would move the job to, or raise
    InvalidStateError when the command is not legal right now.
    """
    allowed, target = COMMAND_TRANSITIONS[command]
    if job.status not in allowed:
        if is_terminal(job.status):
            message = f"Scan is already {job.status.value}"
        else:
            message = f"Cannot {command} scan in state {job.status.value}"
        raise InvalidStateError(job.job_id, job.status.value, command, message)
    if job.process is None:
        raise InvalidStateError(job.job_id, job.status.value, command,
                                "Scan process not available")
    return target


def exit_status(job: Job, succeeded: bool) -> JobStatus:
    """Status after the process exits; terminal states are kept as they are."""
    if is_terminal(job.status):
        return job.status
    return JobStatus.FINISHED if succeeded else JobStatus.FAILED
