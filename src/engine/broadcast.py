# src/engine/broadcast.py
"""
BroadcastHub: bounded replay buffer plus live fan-out of job output.

All hub methods are plain synchronous functions. On the single event loop
this makes append-then-fan-out atomic with respect to subscribe, so a new
subscriber gets every line exactly once, either from replay or live.
"""
import asyncio
import logging

from engine.models import Job

_CLOSE = object()


class SinkClosedError(Exception):
    pass


class QueueSink:
    """
    Subscriber sink backed by an asyncio.Queue, consumed with `async for`.
    A non-zero maxsize bounds the number of undelivered lines; sending to a
    full sink raises asyncio.QueueFull so the hub drops the slow consumer.
    """

    def __init__(self, maxsize: int = 0):
        self.maxsize = maxsize
        self.closed = False
        self._queue: asyncio.Queue = asyncio.Queue()
        self._drained = False

    def send(self, line: str):
        if self.closed:
            raise SinkClosedError("sink is closed")
        if self.maxsize and self._queue.qsize() >= self.maxsize:
            raise asyncio.QueueFull()
        self._queue.put_nowait(line)

    def close(self):
        if self.closed:
            return
        self.closed = True
        self._queue.put_nowait(_CLOSE)

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        if self._drained:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSE:
            self._drained = True
            raise StopAsyncIteration
        return item


def _close_quietly(job: Job, sink):
    try:
        sink.close()
    except Exception as e:
        logging.debug(f"[job_id={job.job_id}] Ignoring error while closing subscriber: {e}")


class BroadcastHub:
    def subscribe(self, job: Job, sink) -> bool:
        """
        Replay the job's buffered lines to `sink`, then attach it for live lines.
        Returns False when the sink was closed right after replay, either because
        the job is already terminal or because replay itself failed.
        """
        try:
            for line in job.logs:
                sink.send(line)
        except Exception as e:
            logging.debug(f"[job_id={job.job_id}] Replay to subscriber failed: {e}")
            _close_quietly(job, sink)
            return False

        if job.closed or not job.is_active:
            _close_quietly(job, sink)
            return False

        job.subscribers.add(sink)
        logging.info(f"[job_id={job.job_id}] Subscriber attached. total={len(job.subscribers)}")
        return True

    def unsubscribe(self, job: Job, sink):
        if sink in job.subscribers:
            job.subscribers.discard(sink)
            logging.info(f"[job_id={job.job_id}] Subscriber detached. total={len(job.subscribers)}")

    def publish(self, job: Job, line: str):
        if not line:
            return
        # deque(maxlen) evicts the oldest line on overflow
        job.logs.append(line)

        dropped = []
        for sink in list(job.subscribers):
            try:
                sink.send(line)
            except Exception as e:
                logging.debug(f"[job_id={job.job_id}] Dropping subscriber: {e!r}")
                dropped.append(sink)
        for sink in dropped:
            job.subscribers.discard(sink)
            _close_quietly(job, sink)

    def close_all(self, job: Job):
        if job.closed:
            return
        job.closed = True
        subscribers = list(job.subscribers)
        job.subscribers.clear()
        for sink in subscribers:
            _close_quietly(job, sink)
        logging.info(f"[job_id={job.job_id}] Closed {len(subscribers)} subscriber(s)")
