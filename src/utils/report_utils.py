# src/utils/report_utils.py
import logging
import os
from typing import List

from engine.errors import ReportNotFoundError, ValidationError
from utils.validators import is_report_file_name, sanitize_report_name


def ensure_output_dir(output_dir: str) -> str:
    """
    Create the report directory if it does not exist yet and return its absolute path.
    """
    resolved = os.path.abspath(output_dir)
    os.makedirs(resolved, exist_ok=True)
    return resolved


def list_reports(output_dir: str) -> List[str]:
    """
    Report file names in output_dir, newest first by name. A missing directory
    simply means no reports yet.
    """
    try:
        files = os.listdir(output_dir)
    except FileNotFoundError:
        return []
    except OSError as e:
        logging.error(f"Cannot list reports in {output_dir}: {e}")
        raise
    return sorted((name for name in files if is_report_file_name(name)), reverse=True)


def resolve_report_path(output_dir: str, raw_name: str) -> str:
    """
    Absolute path of a readable report inside output_dir.
    Raises ValidationError for a bad name or a path escaping the directory and
    ReportNotFoundError when the file is missing or unreadable.
    """
    name = sanitize_report_name(raw_name)
    base = os.path.realpath(output_dir)
    path = os.path.realpath(os.path.join(base, name))
    if os.path.commonpath([base, path]) != base:
        raise ValidationError("file", "Invalid file location")
    if not os.path.isfile(path) or not os.access(path, os.R_OK):
        raise ReportNotFoundError(name)
    return path


def read_report(output_dir: str, raw_name: str) -> bytes:
    path = resolve_report_path(output_dir, raw_name)
    with open(path, "rb") as f:
        return f.read()
