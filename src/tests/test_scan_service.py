import pytest

from conftest import FakeController, emit, finish
from engine.broadcast import BroadcastHub
from engine.errors import InvalidStateError, JobNotFoundError, ValidationError
from engine.job_manager import JobRegistry
from engine.process import SignalKind
from engine.scan_service import ScanService


@pytest.fixture
def service(settings, controller):
    return ScanService(settings, registry=JobRegistry(controller, BroadcastHub()), docker_client=object())


@pytest.mark.asyncio
async def test_start_creates_running_job_with_scan_id_first(service, controller):
    scan_id = await service.start("10.0.0.5", format="html")
    status = service.status(scan_id)
    assert status["status"] == "running"
    assert status["target"] == "10.0.0.5"

    handle = controller.handles[0]
    assert handle.command == "docker"
    assert handle.args[:5] == ["exec", "test_scanner", "nikto.pl", "-h", "10.0.0.5"]
    assert handle.args[-4:] == ["-Format", "html", "-o", "/scans/" + status["file_name"]]

    emit(handle, "- Nikto v2.5.0")
    sink = service.attach(scan_id)
    finish(handle, 0)
    lines = [line async for line in sink]
    assert lines[0] == f"[INFO] Scan ID: {scan_id}"
    assert lines[1] == f"[INFO] Writing report to /scans/{status['file_name']}"
    assert "- Nikto v2.5.0" in lines
    assert lines[-2] == "** Scan finished with exit code 0 **"


@pytest.mark.asyncio
async def test_start_passes_validated_options(service, controller):
    await service.start(" example.com ", format="XML", port="08443", tuning="2b2X", ssl=True)
    args = controller.handles[0].args
    assert args[4:11] == ["example.com", "-ssl", "-port", "8443", "-Tuning", "2bx", "-Format"]
    assert args[11] == "xml"


@pytest.mark.asyncio
@pytest.mark.parametrize("kwargs", [
    {"target": ""},
    {"target": "10.0.0.5", "port": "-1"},
    {"target": "10.0.0.5", "port": "abc"},
    {"target": "10.0.0.5", "format": "exe"},
])
async def test_validation_failure_creates_nothing(service, controller, kwargs):
    with pytest.raises(ValidationError):
        await service.start(**kwargs)
    assert service.registry.jobs == {}
    assert controller.handles == []


@pytest.mark.asyncio
async def test_toggle_pause_alternates(service, controller):
    scan_id = await service.start("10.0.0.5")
    assert service.toggle_pause(scan_id)["status"] == "paused"
    assert service.toggle_pause(scan_id)["status"] == "running"
    assert controller.signals == [SignalKind.PAUSE, SignalKind.RESUME]


@pytest.mark.asyncio
async def test_controls_validate_scan_id(service):
    with pytest.raises(ValidationError):
        service.stop("../1")
    with pytest.raises(JobNotFoundError):
        service.pause("42")


@pytest.mark.asyncio
async def test_stop_then_stop_again_rejected(service):
    scan_id = await service.start("10.0.0.5")
    assert service.stop(scan_id) == {"status": "aborted", "scan_id": scan_id}
    with pytest.raises(InvalidStateError):
        service.stop(scan_id)
    with pytest.raises(InvalidStateError):
        service.resume(scan_id)


@pytest.mark.asyncio
async def test_detach_stops_live_delivery(service, controller):
    scan_id = await service.start("10.0.0.5")
    sink = service.attach(scan_id)
    service.detach(scan_id, sink)
    job = service.registry.get(scan_id)
    assert sink not in job.subscribers
