"""Isolated worker that runs upscale jobs off the caller's thread."""

from __future__ import annotations

import time
from concurrent.futures import Future
from typing import Any, Callable, Mapping

from common.logging import get_logger
from common.tasks import BackgroundLoop

from .messages import complete_message, error_message, parse_job_request
from .pipeline_cache import PipelineCache

PostMessage = Callable[[Mapping[str, Any]], None]

logger = get_logger("worker")


class WorkerPort:
    """One side of a channel into the worker.

    Every outbound message produced by jobs posted through this port is
    delivered to ``listener``, in the order the worker emits them.
    """

    def __init__(self, worker: "UpscaleWorker", listener: PostMessage) -> None:
        self._worker = worker
        self._listener = listener

    def post_message(self, data: Mapping[str, Any]) -> Future[None]:
        return self._worker.dispatch(data, self._listener)


class UpscaleWorker:
    """Receive job requests and stream progress and results back.

    Each inbound message runs as its own coroutine on the worker loop; jobs
    are neither queued nor serialised, so their await points may
    interleave. Every job reads the shared :class:`PipelineCache` afresh.
    """

    def __init__(self, cache: PipelineCache, *, loop: BackgroundLoop | None = None) -> None:
        self.cache = cache
        self.loop = loop or BackgroundLoop()

    def start(self) -> "UpscaleWorker":
        self.loop.start()
        return self

    def close(self) -> None:
        self.loop.stop()

    def connect(self, listener: PostMessage) -> WorkerPort:
        return WorkerPort(self, listener)

    def dispatch(self, data: Mapping[str, Any], post_message: PostMessage) -> Future[None]:
        return self.loop.submit(self.handle_message(data, post_message))

    async def handle_message(self, data: Mapping[str, Any], post_message: PostMessage) -> None:
        job_id = None
        try:
            request = parse_job_request(data)
            job_id = request.job_id
            logger.debug("job %s: loading %s pipeline", job_id or "-", request.tier.value)
            upscaler = await self.cache.get_instance(request.tier, post_message)

            logger.debug("job %s: running", job_id or "-")
            start = time.perf_counter()
            result = await upscaler(request.image_url)
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.info("Took %.0fms to run the model", elapsed_ms)
        except Exception as exc:
            logger.warning("job %s failed: %s", job_id or "-", exc)
            post_message(error_message(str(exc) or type(exc).__name__, job_id=job_id))
            return
        logger.debug("job %s: completed", job_id or "-")
        post_message(complete_message(result, job_id=job_id))


__all__ = ["PostMessage", "UpscaleWorker", "WorkerPort"]
