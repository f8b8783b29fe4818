# src/tools/nikto_adapter.py
import posixpath
import re
import time
from typing import List, Optional, Tuple

from .base import ScanOptions, SecurityToolAdapter

DEFAULT_CONTAINER_DIR = "/scans"


def normalize_container_dir(raw: Optional[str]) -> str:
    """
    Turn a configured container path into an absolute POSIX directory.
    Backslashes and repeated separators collapse, a Windows drive prefix is
    dropped, and an empty or root path falls back to /scans.
    """
    normalized = (raw or "").strip()
    if not normalized:
        return DEFAULT_CONTAINER_DIR
    normalized = re.sub(r"[\\/]+", "/", normalized)
    if re.match(r"^[A-Za-z]:", normalized):
        normalized = normalized[2:]
    if not normalized.startswith("/"):
        normalized = "/" + normalized
    normalized = re.sub(r"/+", "/", normalized)
    if normalized == "/":
        return DEFAULT_CONTAINER_DIR
    return normalized


def report_file_name(target: str, fmt: str, timestamp_ms: int = None) -> str:
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    safe_name = re.sub(r"[:/]", "_", target)
    return f"{safe_name}_{timestamp_ms}.{fmt}"


class NiktoAdapter(SecurityToolAdapter):
    """Runs nikto inside an existing container through `docker exec`."""

    def __init__(self, container: str, container_output_dir: str = DEFAULT_CONTAINER_DIR,
                 docker_binary: str = "docker", scanner_command: str = "nikto.pl"):
        self.container = container
        self.container_output_dir = normalize_container_dir(container_output_dir)
        self.docker_binary = docker_binary
        self.scanner_command = scanner_command

    def container_output_path(self, file_name: str) -> str:
        return posixpath.join(self.container_output_dir, file_name)

    def build_command(self, options: ScanOptions, output_path: str) -> Tuple[str, List[str]]:
        args = ["exec", self.container, self.scanner_command, "-h", options.target]
        if options.ssl:
            args.append("-ssl")
        if options.port:
            args += ["-port", options.port]
        if options.tuning:
            args += ["-Tuning", options.tuning]
        args += ["-Format", options.format, "-o", output_path]
        return self.docker_binary, args
