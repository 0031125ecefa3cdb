"""
Chunk scheduler: one independently timed lane per audio source.

Each lane cuts its encoder every chunk_duration seconds and restarts it
straight away. Finished chunks go to that lane's own single-worker pool, so
the next chunk never waits on the network and transcripts from one source
come back in capture order.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, List

from .encoder import EncoderSession
from .models import Chunk, SourceKind

logger = logging.getLogger(__name__)


class ChunkScheduler:
    """Drives one EncoderSession per available source."""

    def __init__(
        self,
        encoders: List[EncoderSession],
        on_chunk: Callable[[Chunk], object],
        chunk_duration: float = 8.0,
    ):
        if not encoders:
            raise ValueError("ChunkScheduler needs at least one encoder")

        self.encoders = {encoder.source_kind: encoder for encoder in encoders}
        self.on_chunk = on_chunk
        self.chunk_duration = chunk_duration

        self.is_running = False
        self.stop_event = threading.Event()
        self._threads: Dict[SourceKind, threading.Thread] = {}
        self._executors: Dict[SourceKind, ThreadPoolExecutor] = {}
        self._futures: List[Future] = []
        self._futures_lock = threading.Lock()
        self._cancel_pending = False
        self._local = threading.local()

        # Stats
        self.chunks_submitted = 0
        self.chunks_discarded = 0

    @property
    def lanes(self) -> List[SourceKind]:
        return list(self.encoders)

    def in_dispatch_thread(self) -> bool:
        """True when called from inside on_chunk."""
        return getattr(self._local, 'dispatching', False)

    def start(self):
        """Start one lane thread per encoder."""
        if self.is_running:
            logger.warning("Chunk scheduler already running")
            return

        self.stop_event.clear()
        self._cancel_pending = False
        # One worker per lane keeps each source's chunks in order
        self._executors = {
            kind: ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"dispatch-{kind.value}")
            for kind in self.encoders
        }
        self.is_running = True

        # Every lane starts capturing before start() returns
        for encoder in self.encoders.values():
            encoder.start()

        for kind, encoder in self.encoders.items():
            thread = threading.Thread(
                target=self._run_lane,
                args=(encoder,),
                name=f"lane-{kind.value}",
                daemon=True,
            )
            self._threads[kind] = thread
            thread.start()

        logger.info(
            f"Chunk scheduler started: {', '.join(k.value for k in self.encoders)} "
            f"every {self.chunk_duration:.1f}s"
        )

    def _run_lane(self, encoder: EncoderSession):
        kind = encoder.source_kind
        logger.info(f"Started {kind.value} lane")

        while not self.stop_event.wait(self.chunk_duration):
            chunk = encoder.stop()
            encoder.restart()
            if chunk is not None:
                self._submit(chunk)

        # Flush the partial chunk captured since the last cut
        chunk = encoder.stop()
        if chunk is not None:
            if self._cancel_pending:
                self._discard(1, f"final {kind.value} chunk #{chunk.sequence_number}")
            else:
                self._submit(chunk)

        logger.info(f"{kind.value} lane stopped")

    def _submit(self, chunk: Chunk):
        future = self._executors[chunk.source_kind].submit(self._dispatch, chunk)
        with self._futures_lock:
            self._futures = [f for f in self._futures if not f.done()]
            self._futures.append(future)
            self.chunks_submitted += 1

    def _dispatch(self, chunk: Chunk):
        self._local.dispatching = True
        try:
            return self.on_chunk(chunk)
        except Exception as e:
            logger.error(f"Dispatch of {chunk.source_kind.value} chunk #{chunk.sequence_number} failed: {e}")
            return None
        finally:
            self._local.dispatching = False

    def _discard(self, count: int, what: str):
        with self._futures_lock:
            self.chunks_discarded += count
        logger.warning(f"Discarded {what} on cancel")

    def stop(self, cancel_pending: bool = False) -> int:
        """Halt all lanes.

        Chunks already handed to the worker pools are completed, unless
        cancel_pending is set, in which case queued chunks that have not
        started are cancelled and counted. Called from inside on_chunk, the
        pools are shut down without waiting, since a worker cannot join
        itself; queued chunks still run.

        Returns:
            Number of chunks discarded.
        """
        if not self.is_running:
            return 0

        logger.info("Stopping chunk scheduler...")
        self._cancel_pending = cancel_pending
        discarded_before = self.chunks_discarded
        self.stop_event.set()

        for thread in self._threads.values():
            thread.join(timeout=5)
        self._threads.clear()

        if cancel_pending:
            with self._futures_lock:
                cancelled = sum(1 for f in self._futures if f.cancel())
            if cancelled:
                self._discard(cancelled, f"{cancelled} queued chunk(s)")

        wait = not self.in_dispatch_thread()
        if not wait:
            logger.warning("Scheduler stopped from a dispatch worker; not waiting for in-flight chunks")
        for executor in self._executors.values():
            executor.shutdown(wait=wait)
        self._executors = {}
        with self._futures_lock:
            self._futures.clear()

        self.is_running = False
        discarded = self.chunks_discarded - discarded_before
        logger.info(
            f"Chunk scheduler stopped: {self.chunks_submitted} submitted, {discarded} discarded"
        )
        return discarded

    def get_stats(self) -> Dict:
        """Get scheduler statistics."""
        return {
            'lanes': [kind.value for kind in self.encoders],
            'chunks_submitted': self.chunks_submitted,
            'chunks_discarded': self.chunks_discarded,
            'max_restart_gap_ms': {
                kind.value: round(getattr(encoder, 'max_gap', 0.0) * 1000, 1)
                for kind, encoder in self.encoders.items()
            },
        }
