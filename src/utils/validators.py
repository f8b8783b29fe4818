# src/utils/validators.py
"""
Request parameter sanitizers. Each helper returns the cleaned value or raises
ValidationError; none of them touch supervisor state.
"""
import re
from typing import Optional

from engine.errors import ValidationError

SAFE_TUNING_CHARS = frozenset("0123456789abcx")
ALLOWED_FORMATS = ("html", "csv", "txt", "xml")
REPORT_NAME_PATTERN = re.compile(r"^[A-Za-z0-9._-]+\.(html|csv|txt|xml)$")

_TARGET_STRIP = re.compile(r"[^a-zA-Z0-9\-._:/]")
_JOB_ID_PATTERN = re.compile(r"^\d+$")
_PORT_PATTERN = re.compile(r"^[+-]?\d+$")


def _text(raw) -> str:
    if raw is None:
        return ""
    return str(raw).strip()


def sanitize_target(raw) -> str:
    target = _TARGET_STRIP.sub("", _text(raw))
    if not target:
        raise ValidationError("target", "Target required")
    return target


def validate_port(raw) -> Optional[str]:
    """
    Returns None when no port was given, the canonical decimal string when the
    value is within 1..65535.
    """
    value = _text(raw)
    if value == "":
        return None
    if not _PORT_PATTERN.match(value):
        raise ValidationError("port", "Invalid port")
    port = int(value)
    if port < 1 or port > 65535:
        raise ValidationError("port", "Invalid port")
    return str(port)


def normalize_tuning(raw) -> str:
    unique = []
    for ch in _text(raw).lower():
        if ch in SAFE_TUNING_CHARS and ch not in unique:
            unique.append(ch)
    return "".join(unique)


def validate_format(raw) -> str:
    fmt = _text(raw).lower() or "html"
    if fmt not in ALLOWED_FORMATS:
        raise ValidationError("format", "Invalid format")
    return fmt


def sanitize_job_id(raw) -> str:
    job_id = _text(raw)
    if not _JOB_ID_PATTERN.match(job_id):
        raise ValidationError("scan_id", "Invalid scan ID")
    return job_id


def is_report_file_name(name) -> bool:
    return bool(REPORT_NAME_PATTERN.match(name or ""))


def sanitize_report_name(raw) -> str:
    name = _text(raw)
    if not is_report_file_name(name):
        raise ValidationError("file", "Invalid file name")
    return name
