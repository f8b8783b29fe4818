# src/api/schemas.py
from pydantic import BaseModel, Field
from typing import List, Optional, Union

class ScanRequest(BaseModel):
    target: str = Field(..., description="Host name, IP address or URL to scan")
    format: Optional[str] = Field("html", description="Report format: html, csv, txt or xml")
    port: Optional[Union[int, str]] = Field(None, description="Port to scan (1-65535)")
    tuning: Optional[str] = Field(None, description="Nikto tuning characters, e.g. '123b'")
    ssl: Optional[bool] = Field(False, description="Force SSL mode if True")

class ScanStarted(BaseModel):
    scan_id: str
    status: str

class ScanStatus(BaseModel):
    scan_id: str
    status: str
    target: str
    file_name: str
    created_at: Optional[str] = None
    finished_at: Optional[str] = None

class ControlResult(BaseModel):
    scan_id: str
    status: str

class ReportList(BaseModel):
    reports: List[str]
