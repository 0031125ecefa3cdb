"""
Command-line entry point: run a live dual-source transcription session.
"""

import argparse
import logging
import signal
import sys
import threading
from typing import Optional

from .audio_capture import find_system_audio_device, list_audio_devices
from .config import Settings
from .display import RealTimeDisplay, TranscriptionEntry
from .models import AudioMode, TranscriptMessage
from .session import TranscriptSession

logger = logging.getLogger(__name__)


class LiveTranscriber:
    """Runs a TranscriptSession until interrupted, printing transcripts."""

    def __init__(self, settings: Settings, real_time_display: bool = False):
        self.settings = settings
        self.session = TranscriptSession(settings)
        self.real_time_display = real_time_display
        # Created once the session has started, so times share its origin
        self.display: Optional[RealTimeDisplay] = None
        self.shutdown_event = threading.Event()

        self.session.on_transcript(self._transcription_callback)
        self.session.on_error(self._error_callback)

    def _transcription_callback(self, message: TranscriptMessage):
        """Handle reconciled transcripts."""
        if self.display:
            self.display.add_transcription(message)
        else:
            print(str(TranscriptionEntry(message, self.session.session_start)))

    def _error_callback(self, error: str):
        if self.display:
            self.display.set_notice(error)
        else:
            print(f"!! {error}", file=sys.stderr)

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals."""
        logger.info(f"Received signal {signum}, shutting down...")
        self.shutdown_event.set()

    def run(self) -> int:
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        if not self.session.initialize():
            return 1
        try:
            if not self.session.start():
                return 1
            if self.real_time_display:
                self.display = RealTimeDisplay(session_start=self.session.session_start)

            status = self.session.status()
            print("\n" + "=" * 60)
            print("LIVE CALL TRANSCRIPTION ACTIVE")
            print("=" * 60)
            print(f"Mode: {status['mode']} ({status['audio_mode']})")
            print(f"Service: {self.settings.TRANSCRIPTION_API_URL} ({self.settings.TRANSCRIPTION_MODEL})")
            if status['simulated']:
                print("Transcription service unavailable: showing simulated transcripts (*)")
            print("Press Ctrl+C to stop transcription")
            print("=" * 60)

            # Main loop - periodic stats
            while not self.shutdown_event.wait(30.0):
                logger.info(f"Stats: {self.session.status()}")
        finally:
            self.session.cleanup()

        logger.info(f"Final stats: {self.session.status()}")
        return 0


def print_audio_devices():
    """List available audio devices."""
    print("Scanning audio devices...")
    devices = list_audio_devices()

    print("\n=== AUDIO DEVICES ===")
    print("\nMICROPHONE DEVICES (Input):")
    for device in devices['input']:
        print(f"  [{device['id']:2d}] {device['name']}")
        print(f"       {device['channels']} channels, {device['sample_rate']:.0f} Hz")

    print("\nSYSTEM AUDIO DEVICES:")
    system_device = find_system_audio_device(devices['input'])
    if system_device is not None:
        for device in devices['input']:
            if device['id'] == system_device:
                print(f"  [{device['id']:2d}] {device['name']} *** AUTO-DETECTED ***")
    else:
        print("  No system audio device auto-detected")
        print("\n  TROUBLESHOOTING:")
        print("  - Windows: Enable 'Stereo Mix' in Sound settings")
        print("  - Linux: Use a PulseAudio/PipeWire monitor source")
        print("  - macOS: Install BlackHole or SoundFlower")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Live call transcription with channel-based speaker attribution",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # List available audio devices
  dual-call-transcript --list-devices

  # Start with auto-detected devices
  dual-call-transcript

  # Specify devices and service manually
  dual-call-transcript --mic-device 1 --system-device 2 --api-url http://localhost:3002/api/transcribe

  # Laptop speakers instead of headphones (system audio only)
  dual-call-transcript --audio-mode speakers

Every option can also be set with CALL_TRANSCRIPT_* environment variables.
        """
    )

    parser.add_argument('--list-devices', '-l', action='store_true',
                        help='List available audio devices and exit')
    parser.add_argument('--mic-device', '-m', type=int,
                        help='Microphone device ID (use --list-devices to see options)')
    parser.add_argument('--system-device', '-s', type=int,
                        help='System audio device ID (auto-detected if not specified)')
    parser.add_argument('--api-url', type=str,
                        help='Transcription service endpoint')
    parser.add_argument('--model', type=str,
                        help='Transcription model identifier')
    parser.add_argument('--chunk-duration', type=float,
                        help='Chunk duration in seconds')
    parser.add_argument('--audio-mode', type=str, choices=[m.value for m in AudioMode],
                        help='headphones: record both channels; speakers: system audio only')
    parser.add_argument('--real-time-display', action='store_true',
                        help='Full-screen view of the latest transcripts')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable verbose logging')
    return parser


def settings_from_args(args: argparse.Namespace) -> Settings:
    """Environment settings, overridden by any explicit command-line options."""
    overrides = {}
    if args.mic_device is not None:
        overrides['MIC_DEVICE'] = args.mic_device
    if args.system_device is not None:
        overrides['SYSTEM_DEVICE'] = args.system_device
    if args.api_url:
        overrides['TRANSCRIPTION_API_URL'] = args.api_url
    if args.model:
        overrides['TRANSCRIPTION_MODEL'] = args.model
    if args.chunk_duration is not None:
        overrides['CHUNK_DURATION_MS'] = int(args.chunk_duration * 1000)
    if args.audio_mode:
        overrides['AUDIO_MODE'] = AudioMode(args.audio_mode)
    return Settings(**overrides)


def main(argv=None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    if args.list_devices:
        print_audio_devices()
        return 0

    settings = settings_from_args(args)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.LOG_LEVEL,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        return LiveTranscriber(settings, real_time_display=args.real_time_display).run()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as e:
        logger.error(f"Application failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
