import signal
import sys
import time

import pytest
from docker.errors import DockerException, NotFound
from fastapi.testclient import TestClient

from api.routes import format_sse
from engine.scan_service import ScanService
from main import create_app
from tools.nikto_adapter import NiktoAdapter

LONG_RUNNING = "import time; print('+ Target IP: 10.0.0.5', flush=True); time.sleep(30)"
QUICK_SUCCESS = "print('+ Target IP: 10.0.0.5'); print('+ 0 host(s) tested')"


class ScriptAdapter(NiktoAdapter):
    """Runs a python snippet instead of docker exec."""

    def __init__(self, script):
        super().__init__("test_scanner")
        self.script = script

    def build_command(self, options, output_path):
        return sys.executable, ["-c", self.script]


class FakeContainer:
    status = "running"


class FakeContainers:
    def __init__(self, error=None):
        self.error = error

    def get(self, name):
        if self.error:
            raise self.error
        return FakeContainer()


class FakeDocker:
    def __init__(self, error=None):
        self.containers = FakeContainers(error)

    def close(self):
        pass


def make_client(settings, script=QUICK_SUCCESS, docker_client=None):
    service = ScanService(settings, adapter=ScriptAdapter(script), docker_client=docker_client or FakeDocker())
    client = TestClient(create_app(service=service))
    client.service = service
    return client


def wait_for_status(client, scan_id, statuses, timeout=10):
    deadline = time.time() + timeout
    while time.time() < deadline:
        data = client.get(f"/scan/{scan_id}").json()
        if data["status"] in statuses:
            return data
        time.sleep(0.05)
    raise AssertionError(f"scan {scan_id} never reached {statuses}")


def test_health_check(settings):
    with make_client(settings) as client:
        resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "scanner": {"container": "test_scanner", "status": "running"}}
    assert "X-Trace-Id" in resp.headers


def test_health_check_reports_missing_and_unavailable_docker(settings):
    with make_client(settings, docker_client=FakeDocker(NotFound("gone"))) as client:
        assert client.get("/health").json()["scanner"]["status"] == "missing"
    with make_client(settings, docker_client=FakeDocker(DockerException("no daemon"))) as client:
        assert client.get("/health").json()["scanner"]["status"] == "unavailable"


def test_scan_runs_to_completion_and_replays_log(settings):
    with make_client(settings) as client:
        resp = client.post("/scan", json={"target": "10.0.0.5", "format": "html"})
        assert resp.status_code == 200
        data = resp.json()
        scan_id = data["scan_id"]
        assert data["status"] in ("running", "finished")

        status = wait_for_status(client, scan_id, {"finished"})
        assert status["target"] == "10.0.0.5"
        assert status["file_name"].startswith("10.0.0.5_") and status["file_name"].endswith(".html")

        stream = client.get(f"/scan/{scan_id}/stream")
    assert stream.status_code == 200
    assert stream.headers["content-type"].startswith("text/event-stream")
    frames = [line[len("data: "):] for line in stream.text.split("\n") if line.startswith("data: ")]
    assert frames[0] == f"[INFO] Scan ID: {scan_id}"
    assert frames[1].startswith("[INFO] Writing report to /scans/10.0.0.5_")
    assert "+ Target IP: 10.0.0.5" in frames
    assert frames[-2:] == ["** Scan finished with exit code 0 **", f"Report file: /reports/{status['file_name']}"]


@pytest.mark.parametrize("body,error", [
    ({"target": ""}, "Target required"),
    ({"target": "10.0.0.5", "port": "0"}, "Invalid port"),
    ({"target": "10.0.0.5", "port": "65536"}, "Invalid port"),
    ({"target": "10.0.0.5", "format": "pdf"}, "Invalid format"),
])
def test_invalid_scan_request_creates_no_job(settings, body, error):
    client = make_client(settings)
    with client:
        resp = client.post("/scan", json=body)
    assert resp.status_code == 400
    assert resp.json()["error"] == error
    assert client.service.registry.jobs == {}


def test_unknown_and_invalid_scan_ids(settings):
    with make_client(settings) as client:
        assert client.get("/scan/123").status_code == 404
        assert client.get("/scan/abc").status_code == 400
        assert client.post("/scan/123/stop").status_code == 404
        assert client.get("/scan/123/stream").status_code == 404


def test_stop_finished_scan_is_rejected(settings):
    with make_client(settings) as client:
        scan_id = client.post("/scan", json={"target": "10.0.0.5"}).json()["scan_id"]
        wait_for_status(client, scan_id, {"finished"})
        resp = client.post(f"/scan/{scan_id}/stop")
        assert resp.status_code == 409
        assert client.get(f"/scan/{scan_id}").json()["status"] == "finished"


@pytest.mark.skipif(not hasattr(signal, "SIGSTOP"), reason="needs SIGSTOP/SIGCONT")
def test_pause_resume_and_stop_running_scan(settings):
    with make_client(settings, script=LONG_RUNNING) as client:
        scan_id = client.post("/scan", json={"target": "10.0.0.5"}).json()["scan_id"]

        assert client.post(f"/scan/{scan_id}/pause").json() == {"scan_id": scan_id, "status": "paused"}
        assert client.post(f"/scan/{scan_id}/pause").status_code == 409
        assert client.post(f"/scan/{scan_id}/resume").json()["status"] == "running"
        assert client.post(f"/scan/{scan_id}/toggle").json()["status"] == "paused"
        assert client.post(f"/scan/{scan_id}/toggle").json()["status"] == "running"

        assert client.post(f"/scan/{scan_id}/stop").json() == {"scan_id": scan_id, "status": "aborted"}
        assert client.post(f"/scan/{scan_id}/stop").status_code == 409

        service = client.service
        deadline = time.time() + 10
        while service.registry._running and time.time() < deadline:
            time.sleep(0.05)
        assert client.get(f"/scan/{scan_id}").json()["status"] == "aborted"
        text = client.get(f"/scan/{scan_id}/stream").text
    assert "data: ** Scan aborted by user **" in text
    assert "exit code" not in text


def test_history_and_report_download(settings, tmp_path):
    out = tmp_path / "scans"
    out.mkdir()
    (out / "10.0.0.5_1.html").write_text("<html>one</html>")
    (out / "10.0.0.5_2.csv").write_text("two")
    (out / "ignore.exe").write_text("x")
    with make_client(settings) as client:
        assert client.get("/history").json() == {"reports": ["10.0.0.5_2.csv", "10.0.0.5_1.html"]}
        resp = client.get("/reports/10.0.0.5_1.html")
        assert resp.status_code == 200
        assert resp.text == "<html>one</html>"
        assert client.get("/reports/ignore.exe").status_code == 400
        assert client.get("/reports/missing_1.html").status_code == 404


def test_history_without_output_dir(settings):
    with make_client(settings) as client:
        assert client.get("/history").json() == {"reports": []}


def test_format_sse_splits_multiline_messages():
    assert format_sse("one") == "data: one\n\n"
    assert format_sse("a\r\nb") == "data: a\ndata: b\n\n"
