"""
Asynchronous attachment download queue.

- Never blocks the caller: enqueue() only posts a command to the inbox
- Bounded concurrency (2 simultaneous downloads by default)
- Automatic retry with growing delays (30s, 2min, 5min)
- Priority: attachments of operation-linked messages first, then FIFO

A single worker task owns the pending heap, the in-flight set and the
retry bookkeeping. Download tasks and retry timers talk back to it through
the same inbox, so no other coroutine mutates queue state.
"""

import asyncio
import heapq
import itertools
import logging
import time
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set, Tuple

from .duplicate_detector import compute_file_hash
from .errors import DownloadError
from .models import AttachmentJob, JobPriority, JobStatus

logger = logging.getLogger(__name__)

DEFAULT_RETRY_DELAYS = (30.0, 120.0, 300.0)

# Inbox commands
_ENQUEUE = "enqueue"
_RETRY = "retry"
_FINISHED = "finished"
_STOP = "stop"


class AttachmentDownloadQueue:
    """
    Retrying, bounded-concurrency download queue for email attachments.

    The attachment source must provide:
        async fetch(attachment_ref) -> bytes
        list_attachments(message_id) -> List[str]

    Downloaded binaries go to the blob store under their SHA-256 hash; the
    key is recorded on the job (blob_key) once it is READY.

    Usage:
        queue = AttachmentDownloadQueue(source, job_store, blob_store)
        queue.start()
        queue.enqueue("att-1", JobPriority.HIGH)
        await queue.join()
    """

    def __init__(
        self,
        source,
        job_store,
        blob_store,
        max_concurrent: int = 2,
        max_retries: int = 3,
        retry_delays: Iterable[float] = DEFAULT_RETRY_DELAYS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the queue (the worker starts with start()).

        Args:
            source: Attachment source (fetch, list_attachments)
            job_store: Receives every job status transition
            blob_store: Destination of downloaded binaries
            max_concurrent: Maximum simultaneous downloads
            max_retries: Returns to PENDING before the next failure marks a job FAILED
            retry_delays: Delay before retry n is retry_delays[n-1]
            sleep: Coroutine used for retry delays
        """
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")

        self.source = source
        self.job_store = job_store
        self.blob_store = blob_store
        self.max_concurrent = max_concurrent
        self.max_retries = max_retries
        self.retry_delays: Tuple[float, ...] = tuple(retry_delays) or DEFAULT_RETRY_DELAYS
        self._sleep = sleep

        self._inbox: asyncio.Queue = asyncio.Queue()
        self._idle = asyncio.Event()
        self._idle.set()

        # Worker-owned state
        self._pending: List[Tuple[int, int, AttachmentJob]] = []
        self._pending_refs: Set[str] = set()
        self._in_flight: Dict[str, asyncio.Task] = {}
        self._waiting_retry: Dict[str, asyncio.Task] = {}
        self._seq = itertools.count()
        self._order: Dict[str, int] = {}
        self._peak_in_flight = 0

        self._worker: Optional[asyncio.Task] = None
        self._stats = {"enqueued": 0, "ignored": 0, "completed": 0, "failed": 0, "retries": 0}

    # Producer side

    def enqueue(
        self,
        attachment_ref: str,
        priority: JobPriority = JobPriority.NORMAL,
        message_id: Optional[str] = None,
    ) -> None:
        """Post an enqueue command. Duplicates are filtered by the worker."""
        self._idle.clear()
        self._inbox.put_nowait((_ENQUEUE, attachment_ref, priority, message_id))

    def enqueue_batch(
        self,
        attachment_refs: Iterable[str],
        priority: JobPriority = JobPriority.NORMAL,
        message_id: Optional[str] = None,
    ) -> None:
        for ref in attachment_refs:
            self.enqueue(ref, priority, message_id)

    def enqueue_message_attachments(
        self, message_id: str, priority: JobPriority = JobPriority.HIGH
    ) -> List[str]:
        """
        Enqueue every attachment of a message (operation-linked mail).

        Returns:
            The attachment refs that were posted
        """
        refs = list(self.source.list_attachments(message_id))
        logger.info(f"Enqueuing {len(refs)} attachments from message {message_id}")
        self.enqueue_batch(refs, priority, message_id)
        return refs

    # Lifecycle

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        """Start the worker task on the running loop."""
        if self.is_running:
            return
        if self._pending:
            self._idle.clear()
        self._worker = asyncio.get_running_loop().create_task(self._run(), name="download-queue")
        logger.info("Download queue worker started")

    async def join(self) -> None:
        """Wait until nothing is queued, downloading or waiting for a retry."""
        await self._idle.wait()

    async def stop(self) -> None:
        """
        Stop the worker.

        In-flight downloads are awaited, never cancelled. Jobs waiting for a
        retry or still queued stay PENDING in the job store.
        """
        if not self.is_running:
            return
        self._inbox.put_nowait((_STOP,))
        await self._worker
        self._worker = None
        logger.info("Download queue worker stopped")

    # Worker

    async def _run(self) -> None:
        # Jobs left pending by a previous stop()
        self._dispatch()
        self._update_idle()

        while True:
            commands = [await self._inbox.get()]
            while not self._inbox.empty():
                commands.append(self._inbox.get_nowait())

            stop = False
            for command in commands:
                if command[0] == _STOP:
                    stop = True
                else:
                    self._handle(command)

            if stop:
                break

            self._dispatch()
            self._update_idle()

        await self._shutdown()

    def _handle(self, command) -> None:
        kind = command[0]

        if kind == _ENQUEUE:
            _, ref, priority, message_id = command
            self._accept(ref, priority, message_id)

        elif kind == _RETRY:
            job = command[1]
            self._waiting_retry.pop(job.attachment_ref, None)
            self._push(job)

        elif kind == _FINISHED:
            _, job, error = command
            self._in_flight.pop(job.attachment_ref, None)
            if error is None:
                self._complete(job)
            else:
                self._fail(job, error)

    def _accept(self, ref: str, priority: JobPriority, message_id: Optional[str]) -> None:
        if ref in self._pending_refs or ref in self._in_flight or ref in self._waiting_retry:
            logger.debug(f"Attachment {ref} already queued/processing")
            self._stats["ignored"] += 1
            return

        stored = self.job_store.get_job(ref)
        if stored is not None and stored.status.is_terminal:
            logger.debug(f"Attachment {ref} already {stored.status.value}, not enqueued")
            self._stats["ignored"] += 1
            return

        job = AttachmentJob(
            attachment_ref=ref,
            priority=priority,
            retry_count=stored.retry_count if stored is not None else 0,
            status=JobStatus.PENDING,
            message_id=message_id or (stored.message_id if stored else None),
        )
        self.job_store.update_job_status(job)
        self._order[ref] = next(self._seq)
        self._push(job)
        self._stats["enqueued"] += 1
        logger.info(f"Enqueued attachment {ref} (priority: {priority.value})")

    def _push(self, job: AttachmentJob) -> None:
        # Retries keep their first sequence number (FIFO by enqueue time)
        heapq.heappush(self._pending, (job.priority.rank, self._order[job.attachment_ref], job))
        self._pending_refs.add(job.attachment_ref)

    def _dispatch(self) -> None:
        while self._pending and len(self._in_flight) < self.max_concurrent:
            _, _, job = heapq.heappop(self._pending)
            self._pending_refs.discard(job.attachment_ref)

            job.status = JobStatus.DOWNLOADING
            self.job_store.update_job_status(job)
            self._in_flight[job.attachment_ref] = asyncio.get_running_loop().create_task(
                self._download(job)
            )
            self._peak_in_flight = max(self._peak_in_flight, len(self._in_flight))

    async def _download(self, job: AttachmentJob) -> None:
        error = None
        try:
            binary = await self.source.fetch(job.attachment_ref)
            if not binary:
                raise DownloadError(f"Empty download for {job.attachment_ref}")
            job.blob_key = self.blob_store.upload(compute_file_hash(binary), binary)
        except Exception as e:
            # Reported to the worker, which owns the retry decision
            error = str(e) or e.__class__.__name__
        self._inbox.put_nowait((_FINISHED, job, error))

    def _complete(self, job: AttachmentJob) -> None:
        job.status = JobStatus.READY
        job.last_error = None
        self.job_store.update_job_status(job)
        self._order.pop(job.attachment_ref, None)
        self._stats["completed"] += 1
        logger.info(f"Downloaded attachment {job.attachment_ref}")

    def _record_failure(self, job: AttachmentJob, error: str) -> bool:
        """Count one failed attempt. Returns True once the job is FAILED."""
        job.retry_count += 1
        job.last_error = error
        # max_retries returns to PENDING, the next failure is final
        exhausted = job.retry_count > self.max_retries
        job.status = JobStatus.FAILED if exhausted else JobStatus.PENDING
        self.job_store.update_job_status(job)
        if exhausted:
            self._order.pop(job.attachment_ref, None)
            self._stats["failed"] += 1
        return exhausted

    def _fail(self, job: AttachmentJob, error: str) -> None:
        logger.error(f"Error downloading attachment {job.attachment_ref}: {error}")
        if self._record_failure(job, error):
            logger.error(f"Max retries reached for {job.attachment_ref}, marking as failed")
            return

        delay = self.retry_delays[min(job.retry_count, len(self.retry_delays)) - 1]
        self._stats["retries"] += 1
        logger.info(
            f"Retry {job.retry_count}/{self.max_retries} for {job.attachment_ref} in {delay:.0f}s"
        )
        self._waiting_retry[job.attachment_ref] = asyncio.get_running_loop().create_task(
            self._retry_later(job, delay)
        )

    async def _retry_later(self, job: AttachmentJob, delay: float) -> None:
        await self._sleep(delay)
        self._inbox.put_nowait((_RETRY, job))

    def _update_idle(self) -> None:
        if (
            not self._pending
            and not self._in_flight
            and not self._waiting_retry
            and self._inbox.empty()
        ):
            self._idle.set()

    async def _shutdown(self) -> None:
        for task in self._waiting_retry.values():
            task.cancel()
        self._waiting_retry.clear()
        if self._in_flight:
            await asyncio.gather(*self._in_flight.values())

        # Commands posted after stop(): record results, keep new jobs PENDING
        while not self._inbox.empty():
            command = self._inbox.get_nowait()
            kind = command[0]
            if kind == _FINISHED:
                _, job, error = command
                self._in_flight.pop(job.attachment_ref, None)
                if error is None:
                    self._complete(job)
                elif not self._record_failure(job, error):
                    logger.warning(f"Queue stopped, {job.attachment_ref} left pending: {error}")
            elif kind == _ENQUEUE:
                _, ref, priority, message_id = command
                self._accept(ref, priority, message_id)
                logger.warning(f"Queue stopped, {ref} left pending until the next start()")
            elif kind == _RETRY:
                self._push(command[1])
        self._idle.set()

    def get_stats(self) -> Dict:
        """
        Queue statistics.

        Returns:
            Dict with queue length, in-flight count, per-priority counts and totals
        """
        queued = [job for _, _, job in self._pending]
        return {
            **self._stats,
            "queue_length": len(queued),
            "processing": len(self._in_flight),
            "waiting_retry": len(self._waiting_retry),
            "is_running": self.is_running,
            "high_priority": sum(1 for j in queued if j.priority is JobPriority.HIGH),
            "normal_priority": sum(1 for j in queued if j.priority is JobPriority.NORMAL),
            "peak_concurrency": self._peak_in_flight,
            "max_concurrent": self.max_concurrent,
        }


async def ensure_attachments_ready(
    queue: AttachmentDownloadQueue,
    job_store,
    message_id: str,
    attachment_refs: Optional[List[str]] = None,
    timeout: float = 60.0,
    poll_interval: float = 2.0,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> bool:
    """
    Make sure every attachment of a message is downloaded, for automations
    that need the files.

    Args:
        queue: Download queue (attachments are enqueued with HIGH priority)
        job_store: Where job statuses are polled
        message_id: Email message id
        attachment_refs: Attachments to wait for (default: all of the message)
        timeout: Seconds to wait; in-flight work is never cancelled
        poll_interval: Seconds between status polls

    Returns:
        True if all are READY, False if any FAILED or the timeout was hit
    """
    refs = list(attachment_refs) if attachment_refs is not None else list(
        queue.source.list_attachments(message_id)
    )
    if not refs:
        return True

    def statuses() -> List[Optional[JobStatus]]:
        jobs = [job_store.get_job(ref) for ref in refs]
        return [job.status if job else None for job in jobs]

    if all(s is JobStatus.READY for s in statuses()):
        return True

    queue.enqueue_batch(refs, JobPriority.HIGH, message_id)

    start = clock()
    while clock() - start < timeout:
        await sleep(poll_interval)
        current = statuses()
        ready = sum(1 for s in current if s is JobStatus.READY)
        failed = sum(1 for s in current if s is JobStatus.FAILED)
        logger.debug(f"[ensure_attachments_ready] {ready}/{len(refs)} ready, {failed} failed")

        if ready + failed == len(refs):
            return ready == len(refs)

    logger.warning(f"Timeout waiting for attachments of message {message_id}")
    return False
