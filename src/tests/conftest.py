from types import SimpleNamespace

import pytest

from engine.broadcast import BroadcastHub
from engine.job_manager import JobRegistry
from engine.process import END_OF_OUTPUT, ProcessExit, ProcessHandle
from engine.settings import Settings


class FakeController:
    """Stands in for ProcessController; tests drive output and exit by hand."""

    def __init__(self, spawn_error=None, signal_result=True):
        self.spawn_error = spawn_error
        self.signal_result = signal_result
        self.handles = []
        self.signals = []

    async def spawn(self, command, args):
        handle = ProcessHandle(command, args, spawn_error=self.spawn_error)
        if self.spawn_error is None:
            handle.process = SimpleNamespace(pid=4242, returncode=None)
        else:
            handle.lines.put_nowait(END_OF_OUTPUT)
        self.handles.append(handle)
        return handle

    def signal(self, handle, kind):
        self.signals.append(kind)
        return self.signal_result

    async def close(self, handle):
        pass


def emit(handle, *lines):
    for line in lines:
        handle.lines.put_nowait(line)


def finish(handle, returncode=0):
    handle.lines.put_nowait(END_OF_OUTPUT)
    handle._resolve_exit(ProcessExit(returncode))


class ListSink:
    def __init__(self, fail=False):
        self.lines = []
        self.closed = 0
        self.fail = fail

    def send(self, line):
        if self.fail:
            raise ConnectionResetError("client went away")
        self.lines.append(line)

    def close(self):
        self.closed += 1


@pytest.fixture
def controller():
    return FakeController()


@pytest.fixture
def hub():
    return BroadcastHub()


@pytest.fixture
def registry(controller, hub):
    return JobRegistry(controller, hub)


@pytest.fixture
def settings(tmp_path):
    return Settings(output_dir=str(tmp_path / "scans"), scanner_container="test_scanner")
