# src/engine/process.py
"""
ProcessController: owns the external scanner process of each job.

Each spawned process gets a ProcessHandle with two channels:
  * `lines`  - asyncio.Queue of decoded output lines, ended by END_OF_OUTPUT
  * `exited` - future resolved once with a ProcessExit after both pipes drain

Pause/resume rely on SIGSTOP/SIGCONT. Platforms without them (Windows) raise
UnsupportedOperationError for those kinds instead of silently doing nothing.
"""
import asyncio
import codecs
import logging
import re
import signal as _signal
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, List, Optional

from engine.errors import UnsupportedOperationError

END_OF_OUTPUT = None
DEFAULT_CHUNK_SIZE = 4096

_LINE_BREAK = re.compile(r"\r?\n")


class SignalKind(str, Enum):
    PAUSE = "pause"
    RESUME = "resume"
    TERMINATE = "terminate"


_SIGNALS = {
    SignalKind.PAUSE: getattr(_signal, "SIGSTOP", None),
    SignalKind.RESUME: getattr(_signal, "SIGCONT", None),
    SignalKind.TERMINATE: _signal.SIGTERM,
}


@dataclass(frozen=True)
class ProcessExit:
    returncode: Optional[int]

    @property
    def killed(self) -> bool:
        return self.returncode is not None and self.returncode < 0

    @property
    def signal(self) -> Optional[int]:
        return -self.returncode if self.killed else None

    @property
    def code(self) -> Optional[int]:
        """Exit code, or None when the process was ended by a signal."""
        return None if self.killed else self.returncode

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0


class LineSplitter:
    """
    Splits raw output chunks into trimmed, non-empty lines.

    Without carry_partial every chunk is split on its own, so a line broken
    across two reads comes out as two lines. With carry_partial the unfinished
    tail is held until the next chunk or flush().
    """

    def __init__(self, prefix: str = "", carry_partial: bool = False):
        self.prefix = prefix
        self.carry_partial = carry_partial
        self._pending = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def _emit(self, pieces) -> List[str]:
        lines = []
        for piece in pieces:
            trimmed = piece.strip()
            if not trimmed:
                continue
            lines.append(f"{self.prefix} {trimmed}" if self.prefix else trimmed)
        return lines

    def feed(self, chunk: bytes) -> List[str]:
        if not self.carry_partial:
            return self._emit(_LINE_BREAK.split(chunk.decode("utf-8", errors="replace")))
        text = self._decoder.decode(chunk)
        pieces = _LINE_BREAK.split(self._pending + text)
        self._pending = pieces.pop()
        return self._emit(pieces)

    def flush(self) -> List[str]:
        pending, self._pending = self._pending + self._decoder.decode(b"", final=True), ""
        return self._emit([pending])


class ProcessHandle:
    def __init__(self, command: str, args: List[str], process=None, spawn_error: str = None):
        self.command = command
        self.args = list(args)
        self.process = process
        self.spawn_error = spawn_error
        self.lines: asyncio.Queue = asyncio.Queue()
        self.exited: asyncio.Future = asyncio.get_running_loop().create_future()
        self._watcher: Optional[asyncio.Task] = None

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process is not None else None

    @property
    def started(self) -> bool:
        return self.process is not None

    async def output(self) -> AsyncIterator[str]:
        """Yield output lines until both pipes are closed."""
        while True:
            line = await self.lines.get()
            if line is END_OF_OUTPUT:
                return
            yield line

    async def wait(self) -> ProcessExit:
        return await asyncio.shield(self.exited)

    def _resolve_exit(self, result: ProcessExit):
        if not self.exited.done():
            self.exited.set_result(result)


class ProcessController:
    def __init__(self, carry_partial_lines: bool = False, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.carry_partial_lines = carry_partial_lines
        self.chunk_size = chunk_size

    @staticmethod
    def supports(kind: SignalKind) -> bool:
        return _SIGNALS[kind] is not None

    async def spawn(self, command: str, args: List[str]) -> ProcessHandle:
        """
        Start `command args...` with stdin closed and both output pipes captured.
        A process that cannot be started yields a handle with spawn_error set.
        """
        try:
            process = await asyncio.create_subprocess_exec(
                command, *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logging.error(f"Failed to start {command}: {e}")
            handle = ProcessHandle(command, args, spawn_error=str(e))
            handle.lines.put_nowait(END_OF_OUTPUT)
            return handle

        handle = ProcessHandle(command, args, process=process)
        logging.info(f"Started {command} with PID {process.pid}")
        handle._watcher = asyncio.create_task(self._watch(handle))
        return handle

    async def _pump(self, handle: ProcessHandle, stream: asyncio.StreamReader, prefix: str):
        splitter = LineSplitter(prefix, self.carry_partial_lines)
        while True:
            chunk = await stream.read(self.chunk_size)
            if not chunk:
                break
            for line in splitter.feed(chunk):
                handle.lines.put_nowait(line)
        for line in splitter.flush():
            handle.lines.put_nowait(line)

    async def _watch(self, handle: ProcessHandle):
        process = handle.process
        try:
            try:
                await asyncio.gather(
                    self._pump(handle, process.stdout, ""),
                    self._pump(handle, process.stderr, "[ERR]"),
                )
            except OSError as e:
                logging.error(f"Lost output of PID {process.pid}: {e}")
            returncode = await process.wait()
        except asyncio.CancelledError:
            handle.lines.put_nowait(END_OF_OUTPUT)
            handle.exited.cancel()
            raise
        handle.lines.put_nowait(END_OF_OUTPUT)
        handle._resolve_exit(ProcessExit(returncode))
        logging.info(f"Process {process.pid} exited with code {returncode}")

    def signal(self, handle: ProcessHandle, kind: SignalKind) -> bool:
        """Deliver one control signal. Returns False when delivery failed."""
        signum = _SIGNALS[kind]
        if signum is None:
            raise UnsupportedOperationError(f"{kind.value} is not supported on this platform")
        process = handle.process
        if process is None or process.returncode is not None:
            return False
        try:
            process.send_signal(signum)
        except ProcessLookupError:
            return False
        except OSError as e:
            logging.error(f"Failed to send {kind.value} to PID {process.pid}: {e}")
            return False
        return True

    async def close(self, handle: ProcessHandle):
        """Stop watching a handle, used on shutdown."""
        if handle._watcher is not None and not handle._watcher.done():
            handle._watcher.cancel()
            try:
                await handle._watcher
            except asyncio.CancelledError:
                pass
