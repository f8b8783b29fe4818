# src/engine/scan_service.py
"""
ScanService: transport-agnostic control surface of the scan supervisor.
Validates raw request values, builds the scanner command and routes
everything else to the JobRegistry.
"""
import logging

import docker
from docker.errors import DockerException, NotFound

from engine.broadcast import BroadcastHub, QueueSink
from engine.job_manager import JobRegistry
from engine.models import JobStatus
from engine.process import ProcessController
from engine.settings import Settings, load_settings
from tools.base import ScanOptions
from tools.nikto_adapter import NiktoAdapter, report_file_name
from utils import report_utils
from utils.validators import (
    normalize_tuning,
    sanitize_job_id,
    sanitize_target,
    validate_format,
    validate_port,
)


class ScanService:
    def __init__(self, settings: Settings = None, registry: JobRegistry = None,
                 adapter: NiktoAdapter = None, docker_client=None):
        self.settings = settings or load_settings()
        self.adapter = adapter or NiktoAdapter(
            container=self.settings.scanner_container,
            container_output_dir=self.settings.container_output_dir,
            docker_binary=self.settings.docker_binary,
            scanner_command=self.settings.scanner_command,
        )
        self.registry = registry or JobRegistry(
            ProcessController(carry_partial_lines=self.settings.carry_partial_lines),
            BroadcastHub(),
            log_buffer_size=self.settings.log_buffer_size,
            retention_seconds=self.settings.job_retention_seconds,
        )
        self._docker_client = docker_client

    @property
    def docker_client(self):
        if self._docker_client is None:
            self._docker_client = docker.from_env()
        return self._docker_client

    async def start(self, target, format="html", port=None, tuning=None, ssl=False) -> str:
        """
        Validate the request, then create and launch a scan job. Returns the scan id.
        Any ValidationError is raised before a job exists.
        """
        options = ScanOptions(
            target=sanitize_target(target),
            format=validate_format(format),
            port=validate_port(port),
            tuning=normalize_tuning(tuning),
            ssl=bool(ssl),
        )
        file_name = report_file_name(options.target, options.format)
        output_path = self.adapter.container_output_path(file_name)
        command, args = self.adapter.build_command(options, output_path)
        report_utils.ensure_output_dir(self.settings.output_dir)

        logging.info(f"[scan] writing report to {output_path}")
        job = await self.registry.start(
            options.target, file_name, command, args,
            info_lines=[f"[INFO] Writing report to {output_path}"],
        )
        return job.job_id

    def attach(self, job_id) -> QueueSink:
        """Subscribe to a scan's log. The sink replays buffered lines first."""
        job_id = sanitize_job_id(job_id)
        size = self.settings.subscriber_queue_size
        sink = QueueSink(max(size, self.settings.log_buffer_size) if size else 0)
        self.registry.attach(job_id, sink)
        return sink

    def detach(self, job_id, sink: QueueSink):
        self.registry.detach(job_id, sink)

    def status(self, job_id) -> dict:
        return self.registry.get(sanitize_job_id(job_id)).to_dict()

    def stop(self, job_id) -> dict:
        job = self.registry.stop(sanitize_job_id(job_id))
        return {"status": job.status.value, "scan_id": job.job_id}

    def pause(self, job_id) -> dict:
        job = self.registry.pause(sanitize_job_id(job_id))
        return {"status": job.status.value, "scan_id": job.job_id}

    def resume(self, job_id) -> dict:
        job = self.registry.resume(sanitize_job_id(job_id))
        return {"status": job.status.value, "scan_id": job.job_id}

    def toggle_pause(self, job_id) -> dict:
        job = self.registry.get(sanitize_job_id(job_id))
        if job.status is JobStatus.PAUSED:
            return self.resume(job.job_id)
        return self.pause(job.job_id)

    def list_reports(self):
        return report_utils.list_reports(self.settings.resolved_output_dir)

    def fetch_report(self, name) -> str:
        return report_utils.resolve_report_path(self.settings.resolved_output_dir, name)

    def read_report(self, name) -> bytes:
        return report_utils.read_report(self.settings.resolved_output_dir, name)

    def scanner_health(self) -> dict:
        name = self.settings.scanner_container
        try:
            container = self.docker_client.containers.get(name)
        except NotFound:
            return {"container": name, "status": "missing"}
        except DockerException as e:
            logging.warning(f"Docker unavailable while checking {name}: {e}")
            return {"container": name, "status": "unavailable", "error": str(e)}
        return {"container": name, "status": container.status}

    async def shutdown(self):
        await self.registry.shutdown()
        if self._docker_client is not None:
            self._docker_client.close()
