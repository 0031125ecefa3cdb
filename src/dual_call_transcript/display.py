"""
Console rendering of reconciled transcripts.
"""

import os
import threading
import time
from typing import List, Optional

from .models import TranscriptMessage


class TranscriptionEntry:
    """One transcript line, timed relative to the session start."""

    def __init__(self, message: TranscriptMessage, session_start: Optional[float] = None):
        self.message = message
        self.session_start = session_start or time.time()
        self.relative_time = max(0.0, message.timestamp - self.session_start)

    @property
    def label(self) -> str:
        label = self.message.speaker.value
        if self.message.simulated:
            label += "*"
        return label

    @staticmethod
    def format_time(seconds: float) -> str:
        """Format time in HH:MM:SS.ms format."""
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        seconds = seconds % 60
        return f"{hours:02d}:{minutes:02d}:{seconds:06.3f}"

    def __str__(self) -> str:
        """String representation for console display."""
        time_str = self.format_time(self.relative_time)
        return f"[{time_str}] {self.label:6s}: {self.message.text.strip()}"


class RealTimeDisplay:
    """Full-screen console view of the most recent transcripts."""

    def __init__(self, max_lines: int = 20, session_start: Optional[float] = None):
        self.max_lines = max_lines
        self.session_start = session_start or time.time()
        self.lines: List[str] = []
        self.notice: Optional[str] = None
        self.lock = threading.Lock()

    def add_transcription(self, message: TranscriptMessage):
        """Add a transcript and redraw."""
        line = str(TranscriptionEntry(message, self.session_start))

        with self.lock:
            self.lines.append(line)
            # Keep only the last max_lines
            if len(self.lines) > self.max_lines:
                self.lines.pop(0)
            self._redraw()

    def set_notice(self, message: str):
        """Show an error line under the transcripts until replaced."""
        with self.lock:
            self.notice = message
            self._redraw()

    def _redraw(self):
        """Redraw the console display."""
        os.system('cls' if os.name == 'nt' else 'clear')

        print("=" * 80)
        print("LIVE CALL TRANSCRIPTION")
        print("=" * 80)
        print()

        for line in self.lines:
            print(line)

        print()
        if self.notice:
            print(f"!! {self.notice}")
        print("Press Ctrl+C to stop...")

    def clear(self):
        """Clear the display."""
        with self.lock:
            self.lines.clear()
            self._redraw()
