# src/engine/models.py
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Optional, Set

DEFAULT_LOG_BUFFER_SIZE = 1000


class JobStatus(str, Enum):
    RUNNING = "running"
    PAUSED = "paused"
    ABORTED = "aborted"
    FAILED = "failed"
    FINISHED = "finished"


@dataclass(eq=False)
class Job:
    job_id: str
    target: str
    file_name: str
    status: JobStatus = JobStatus.RUNNING
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    log_capacity: int = DEFAULT_LOG_BUFFER_SIZE
    logs: Deque[str] = field(init=False)
    subscribers: Set[Any] = field(default_factory=set)
    process: Optional[Any] = None
    # set once close_all has run, later subscribers are closed after replay
    closed: bool = False

    def __post_init__(self):
        self.logs = deque(maxlen=self.log_capacity)

    @property
    def is_active(self) -> bool:
        return self.status in (JobStatus.RUNNING, JobStatus.PAUSED)

    def to_dict(self) -> dict:
        return {
            "scan_id": self.job_id,
            "status": self.status.value,
            "file_name": self.file_name,
            "target": self.target,
            "created_at": str(self.created_at),
            "finished_at": str(self.finished_at) if self.finished_at else None,
        }
