"""
Audio sources for dual-stream capture.

Each source owns one physical stream (microphone or system audio) and hands
mono float32 blocks to a single registered handler. Muting zero-fills blocks
instead of stopping the stream, so downstream chunk timing never changes.
"""

import numpy as np
import threading
from abc import ABC, abstractmethod
from typing import Optional, Callable, Dict, List
import platform
import logging
import os

from .errors import AudioPermissionError
from .models import SourceKind

logger = logging.getLogger(__name__)

BlockHandler = Callable[[np.ndarray], None]


class AudioSource(ABC):
    """Base class: lifecycle, mute state and block delivery."""

    def __init__(self, kind: SourceKind):
        self.kind = kind
        self.muted = False
        self.is_active = False
        self._handler: Optional[BlockHandler] = None
        self._lock = threading.Lock()

    def set_block_handler(self, handler: Optional[BlockHandler]):
        """Register the consumer of captured blocks (normally an encoder)."""
        with self._lock:
            self._handler = handler

    def set_muted(self, muted: bool):
        """Disable or enable the track without touching the stream."""
        self.muted = muted
        logger.info(f"{self.kind.value} source {'muted' if muted else 'unmuted'}")

    @abstractmethod
    def acquire(self):
        """Open the underlying stream. Raises AudioPermissionError on failure."""

    @abstractmethod
    def release(self):
        """Close the underlying stream. Safe to call more than once."""

    def _deliver(self, block: np.ndarray):
        if not self.is_active:
            return

        # Downmix to mono
        if block.ndim > 1:
            block = np.mean(block, axis=1)
        block = block.astype(np.float32, copy=False).flatten()

        if self.muted:
            block = np.zeros_like(block)

        with self._lock:
            handler = self._handler
        if handler is not None:
            handler(block)


class SoundDeviceSource(AudioSource):
    """PortAudio input stream via sounddevice."""

    def __init__(
        self,
        kind: SourceKind,
        device: Optional[int] = None,
        sample_rate: int = 16000,
        block_duration: float = 0.3,
    ):
        super().__init__(kind)
        self.device = device
        self.sample_rate = sample_rate
        self.block_size = int(sample_rate * block_duration)
        self.stream = None

        # Error tracking
        self.errors = 0
        self.max_errors = 5

    def _callback(self, indata, frames, time_info, status):
        """PortAudio callback."""
        try:
            if status:
                logger.warning(f"{self.kind.value} audio status: {status}")
            self._deliver(indata.copy())
        except Exception as e:
            self.errors += 1
            logger.error(f"{self.kind.value} callback error ({self.errors}/{self.max_errors}): {e}")
            if self.errors >= self.max_errors:
                logger.error(f"Too many {self.kind.value} errors, stopping stream")
                if self.stream:
                    self.stream.stop()

    def acquire(self):
        """Create and start the input stream."""
        if self.is_active:
            return

        self.errors = 0
        try:
            # PortAudio may be missing entirely on this host
            import sounddevice as sd

            _setup_wsl_audio()
            self.stream = sd.InputStream(
                device=self.device,
                channels=1,
                samplerate=self.sample_rate,
                blocksize=self.block_size,
                callback=self._callback,
                dtype=np.float32,
            )
            self.is_active = True
            self.stream.start()
            logger.info(f"Started {self.kind.value} stream (device: {self.device})")
        except Exception as e:
            self.is_active = False
            self.stream = None
            fatal = self.kind is SourceKind.MICROPHONE
            raise AudioPermissionError(
                self.kind, f"Failed to open {self.kind.value} stream: {e}", fatal=fatal
            ) from e

    def release(self):
        """Stop and close the stream."""
        self.is_active = False
        if self.stream:
            try:
                self.stream.stop()
                self.stream.close()
            except Exception as e:
                logger.error(f"Error stopping {self.kind.value} stream: {e}")
            finally:
                self.stream = None
                logger.info(f"Released {self.kind.value} stream")

    def is_healthy(self) -> bool:
        return self.stream is not None and self.errors < self.max_errors


class PushAudioSource(AudioSource):
    """Source fed from outside, e.g. the remote track of a WebRTC call.

    The owner of the remote stream calls push() with each block it receives.
    """

    def acquire(self):
        self.is_active = True
        logger.info(f"Attached external {self.kind.value} stream")

    def release(self):
        self.is_active = False

    def push(self, block: np.ndarray):
        """Feed one block of float32 samples."""
        self._deliver(np.asarray(block, dtype=np.float32))


def list_audio_devices() -> Dict[str, List[Dict]]:
    """List available audio devices."""
    try:
        import sounddevice as sd

        devices = sd.query_devices()
        input_devices = []
        output_devices = []

        for i, device in enumerate(devices):
            device_info = {
                'id': i,
                'name': device['name'],
                'channels': device['max_input_channels'] if device['max_input_channels'] > 0 else device['max_output_channels'],
                'sample_rate': device['default_samplerate']
            }

            if device['max_input_channels'] > 0:
                input_devices.append(device_info)
            if device['max_output_channels'] > 0:
                output_devices.append(device_info)

        return {'input': input_devices, 'output': output_devices}
    except Exception as e:
        logger.error(f"Failed to list audio devices: {e}")
        return {'input': [], 'output': []}


SYSTEM_DEVICE_KEYWORDS = {
    'windows': ['stereo mix', 'system sounds', 'what u hear', 'loopback', 'wasapi'],
    'linux': ['monitor'],
    'darwin': ['system audio', 'soundflower', 'blackhole', 'aggregate'],
}


def find_system_audio_device(devices: Optional[List[Dict]] = None) -> Optional[int]:
    """Find a loopback/monitor input that carries system audio.

    Args:
        devices: Input devices as returned by list_audio_devices()['input'].
            Queried from PortAudio when omitted.
    """
    if devices is None:
        devices = list_audio_devices()['input']

    system = platform.system().lower()
    if _is_wsl():
        system = 'windows'
    keywords = SYSTEM_DEVICE_KEYWORDS.get(system, [])

    for device in devices:
        name = device['name'].lower()
        if any(keyword in name for keyword in keywords):
            logger.info(f"Found system audio device: {device['name']} (ID: {device['id']})")
            return device['id']

    logger.warning("No system audio device found automatically")
    return None


def _is_wsl() -> bool:
    return 'microsoft' in platform.uname().release.lower()


def _setup_wsl_audio():
    """Point PulseAudio at the WSLg server if needed."""
    if _is_wsl() and 'PULSE_SERVER' not in os.environ:
        os.environ['PULSE_SERVER'] = 'unix:/mnt/wslg/PulseServer'
        logger.info("Configured WSL audio environment")
