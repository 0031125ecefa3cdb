"""
Simulated transcript feed for when the transcription service is unreachable.

Lets a consumer keep working (UI, downstream prompts) with clearly flagged
placeholder utterances instead of silence.
"""

import logging
import random
import threading
from typing import Callable, List, Optional, Sequence

from .models import SourceKind, TranscriptMessage

logger = logging.getLogger(__name__)

SIMULATION_TEXTS = [
    "Thanks for joining the call",
    "Let me share my screen",
    "Can everyone hear me clearly?",
    "I think we should focus on the main objectives",
    "What are your thoughts on this approach?",
    "Let's move to the next agenda item",
    "Any questions before we continue?",
    "I'll follow up with an email summary",
]


class SimulatedTranscriptFeed:
    """Emits one simulated message per interval, cycling through the lanes."""

    def __init__(
        self,
        sources: Sequence[SourceKind],
        on_message: Callable[[TranscriptMessage], None],
        interval: float = 8.0,
        texts: Optional[List[str]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.sources = list(sources)
        self.on_message = on_message
        self.interval = interval
        self.texts = texts or SIMULATION_TEXTS
        self.rng = rng or random.Random()

        self.is_running = False
        self.stop_event = threading.Event()
        self.thread: Optional[threading.Thread] = None
        self.messages_sent = 0

    def in_feed_thread(self) -> bool:
        return self.thread is not None and threading.current_thread() is self.thread

    def start(self):
        if self.is_running:
            return
        logger.info(f"Falling back to simulation for {', '.join(s.value for s in self.sources)}")
        self.is_running = True
        self.stop_event.clear()
        self.thread = threading.Thread(target=self._run, name="simulation", daemon=True)
        self.thread.start()

    def _run(self):
        while not self.stop_event.wait(self.interval):
            source = self.sources[self.messages_sent % len(self.sources)]
            message = TranscriptMessage.simulated_message(source, self.rng.choice(self.texts))
            self.messages_sent += 1
            try:
                self.on_message(message)
            except Exception as e:
                logger.error(f"Simulation callback error: {e}")

    def stop(self):
        if not self.is_running:
            return
        self.is_running = False
        self.stop_event.set()
        if self.thread and not self.in_feed_thread():
            self.thread.join(timeout=5)
        self.thread = None
