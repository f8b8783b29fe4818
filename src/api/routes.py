# src/api/routes.py
from fastapi import APIRouter, Depends, Request
from fastapi.responses import FileResponse, StreamingResponse
from api.schemas import ControlResult, ReportList, ScanRequest, ScanStarted, ScanStatus
from engine.scan_service import ScanService
import logging
import re

router = APIRouter()

_LINE_BREAK = re.compile(r"\r?\n")


def get_scan_service(request: Request) -> ScanService:
    return request.app.state.scan_service


def format_sse(message: str) -> str:
    """Encode one log message as a Server-Sent-Events frame."""
    return "".join(f"data: {line}\n" for line in _LINE_BREAK.split(message)) + "\n"


@router.post(
    "/scan",
    summary="Start a scan job",
    response_description="Scan ID and initial status",
    tags=["Scan Jobs"],
    response_model=ScanStarted,
    responses={
        200: {"description": "Scan started"},
        400: {"description": "Invalid scan parameters"},
    },
)
async def start_scan(request: ScanRequest, service: ScanService = Depends(get_scan_service)):
    """
    Validate the parameters and launch a scan. The log is read from /scan/{scan_id}/stream.
    """
    scan_id = await service.start(
        request.target,
        format=request.format,
        port=request.port,
        tuning=request.tuning,
        ssl=request.ssl,
    )
    status = service.status(scan_id)["status"]
    return {"scan_id": scan_id, "status": status}


@router.get(
    "/scan/{scan_id}/stream",
    summary="Stream a scan log (Server-Sent Events)",
    tags=["Scan Jobs"],
    responses={
        200: {"description": "text/event-stream of log lines"},
        400: {"description": "Invalid scan ID"},
        404: {"description": "Scan not found"},
    },
)
async def stream_scan(scan_id: str, service: ScanService = Depends(get_scan_service)):
    """
    Replays the buffered log, then streams live lines until the scan ends.
    """
    sink = service.attach(scan_id)

    async def events():
        try:
            async for line in sink:
                yield format_sse(line)
        finally:
            service.detach(scan_id, sink)

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.get(
    "/scan/{scan_id}",
    summary="Get scan status",
    tags=["Scan Jobs"],
    response_model=ScanStatus,
    responses={
        400: {"description": "Invalid scan ID"},
        404: {"description": "Scan not found"},
    },
)
async def get_scan_status(scan_id: str, service: ScanService = Depends(get_scan_service)):
    return service.status(scan_id)


@router.post("/scan/{scan_id}/stop", tags=["Scan Jobs"], response_model=ControlResult)
async def stop_scan(scan_id: str, service: ScanService = Depends(get_scan_service)):
    """Abort a running or paused scan."""
    logging.info(f"[job_id={scan_id}] Stop requested")
    return service.stop(scan_id)


@router.post("/scan/{scan_id}/pause", tags=["Scan Jobs"], response_model=ControlResult)
async def pause_scan(scan_id: str, service: ScanService = Depends(get_scan_service)):
    return service.pause(scan_id)


@router.post("/scan/{scan_id}/resume", tags=["Scan Jobs"], response_model=ControlResult)
async def resume_scan(scan_id: str, service: ScanService = Depends(get_scan_service)):
    return service.resume(scan_id)


@router.post("/scan/{scan_id}/toggle", tags=["Scan Jobs"], response_model=ControlResult)
async def toggle_scan(scan_id: str, service: ScanService = Depends(get_scan_service)):
    """Pause a running scan or resume a paused one."""
    return service.toggle_pause(scan_id)


@router.get("/history", tags=["Reports"], response_model=ReportList)
def list_reports(service: ScanService = Depends(get_scan_service)):
    """
    Report files in the output directory, newest first.
    """
    return {"reports": service.list_reports()}


@router.get(
    "/reports/{file}",
    summary="Download a scan report",
    tags=["Reports"],
    responses={
        200: {"description": "Report file returned"},
        400: {"description": "Invalid file name"},
        404: {"description": "Report not found"},
    },
)
def download_report(file: str, service: ScanService = Depends(get_scan_service)):
    path = service.fetch_report(file)
    return FileResponse(path, filename=file)


@router.get("/health")
def health_check(service: ScanService = Depends(get_scan_service)):
    return {"status": "ok", "scanner": service.scanner_health()}
