"""
Tests for audio_capture module.
"""

import sys
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from dual_call_transcript.audio_capture import (
    AudioSource,
    PushAudioSource,
    SoundDeviceSource,
    find_system_audio_device,
    list_audio_devices,
)
from dual_call_transcript.errors import AudioPermissionError
from dual_call_transcript.models import SourceKind


@pytest.fixture
def mock_sd():
    """sounddevice module replaced for the duration of a test."""
    sd = MagicMock()
    with patch.dict(sys.modules, {'sounddevice': sd}):
        yield sd


@pytest.fixture
def device_list():
    return [
        {'id': 0, 'name': 'Built-in Microphone', 'channels': 1, 'sample_rate': 44100.0},
        {'id': 1, 'name': 'Stereo Mix (Realtek Audio)', 'channels': 2, 'sample_rate': 44100.0},
        {'id': 2, 'name': 'alsa_output.pci.analog-stereo.monitor', 'channels': 2, 'sample_rate': 48000.0},
    ]


class TestAudioSource:
    """Test cases for block delivery shared by all sources."""

    def test_base_class_is_abstract(self):
        with pytest.raises(TypeError):
            AudioSource(SourceKind.MICROPHONE)

    def test_push_delivers_blocks(self):
        source = PushAudioSource(SourceKind.SYSTEM)
        handler = MagicMock()
        source.set_block_handler(handler)
        source.acquire()

        source.push(np.ones(10, dtype=np.float32))

        handler.assert_called_once()
        assert handler.call_args[0][0].dtype == np.float32

    def test_inactive_source_drops_blocks(self):
        source = PushAudioSource(SourceKind.SYSTEM)
        handler = MagicMock()
        source.set_block_handler(handler)

        source.push(np.ones(10, dtype=np.float32))
        source.acquire()
        source.release()
        source.push(np.ones(10, dtype=np.float32))

        handler.assert_not_called()

    def test_stereo_downmixed(self):
        source = PushAudioSource(SourceKind.SYSTEM)
        received = []
        source.set_block_handler(received.append)
        source.acquire()

        source.push(np.array([[0.2, 0.4], [0.6, 0.8]], dtype=np.float32))

        assert received[0].shape == (2,)
        assert np.allclose(received[0], [0.3, 0.7])

    def test_muted_blocks_are_zero_filled(self):
        source = PushAudioSource(SourceKind.MICROPHONE)
        received = []
        source.set_block_handler(received.append)
        source.acquire()

        source.set_muted(True)
        source.push(np.full(8, 0.5, dtype=np.float32))
        source.set_muted(False)
        source.push(np.full(8, 0.5, dtype=np.float32))

        assert len(received) == 2
        assert not received[0].any()
        assert received[1].all()


class TestSoundDeviceSource:
    """Test cases for the PortAudio-backed source."""

    def test_initialization(self):
        source = SoundDeviceSource(SourceKind.MICROPHONE, device=1, sample_rate=48000, block_duration=0.5)

        assert source.device == 1
        assert source.block_size == 24000
        assert source.is_active is False

    @patch('dual_call_transcript.audio_capture._setup_wsl_audio')
    def test_acquire_opens_stream(self, mock_wsl, mock_sd):
        source = SoundDeviceSource(SourceKind.MICROPHONE, device=3)

        source.acquire()

        kwargs = mock_sd.InputStream.call_args[1]
        assert kwargs['device'] == 3
        assert kwargs['channels'] == 1
        assert kwargs['samplerate'] == 16000
        mock_sd.InputStream.return_value.start.assert_called_once()
        assert source.is_active and source.is_healthy()

    @patch('dual_call_transcript.audio_capture._setup_wsl_audio')
    def test_mic_failure_is_fatal(self, mock_wsl, mock_sd):
        mock_sd.InputStream.side_effect = RuntimeError("Permission denied")
        source = SoundDeviceSource(SourceKind.MICROPHONE)

        with pytest.raises(AudioPermissionError) as exc_info:
            source.acquire()

        assert exc_info.value.fatal is True
        assert exc_info.value.source_kind is SourceKind.MICROPHONE
        assert source.is_active is False

    @patch('dual_call_transcript.audio_capture._setup_wsl_audio')
    def test_system_failure_is_not_fatal(self, mock_wsl, mock_sd):
        mock_sd.InputStream.side_effect = RuntimeError("Invalid device")
        source = SoundDeviceSource(SourceKind.SYSTEM, device=9)

        with pytest.raises(AudioPermissionError) as exc_info:
            source.acquire()

        assert exc_info.value.fatal is False

    def test_missing_portaudio_is_permission_error(self):
        source = SoundDeviceSource(SourceKind.MICROPHONE)

        with patch.dict(sys.modules, {'sounddevice': None}):
            with pytest.raises(AudioPermissionError) as exc_info:
                source.acquire()

        assert exc_info.value.fatal is True
        assert source.is_active is False

    @patch('dual_call_transcript.audio_capture._setup_wsl_audio')
    def test_wsl_setup_failure_is_permission_error(self, mock_wsl, mock_sd):
        mock_wsl.side_effect = OSError("read-only environment")
        source = SoundDeviceSource(SourceKind.SYSTEM)

        with pytest.raises(AudioPermissionError):
            source.acquire()

        mock_sd.InputStream.assert_not_called()

    @patch('dual_call_transcript.audio_capture._setup_wsl_audio')
    def test_release(self, mock_wsl, mock_sd):
        source = SoundDeviceSource(SourceKind.MICROPHONE)
        source.acquire()
        stream = mock_sd.InputStream.return_value

        source.release()
        source.release()

        stream.stop.assert_called_once()
        stream.close.assert_called_once()
        assert source.stream is None

    def test_callback_delivers_copy(self):
        source = SoundDeviceSource(SourceKind.MICROPHONE)
        source.is_active = True
        received = []
        source.set_block_handler(received.append)
        indata = np.full((4, 1), 0.25, dtype=np.float32)

        source._callback(indata, 4, None, None)

        assert received[0].shape == (4,)
        assert received[0][0] == pytest.approx(0.25)

    def test_callback_errors_stop_stream(self):
        source = SoundDeviceSource(SourceKind.SYSTEM)
        source.is_active = True
        source.stream = MagicMock()
        source.set_block_handler(MagicMock(side_effect=RuntimeError("encoder bug")))

        for _ in range(source.max_errors):
            source._callback(np.zeros((4, 1), dtype=np.float32), 4, None, None)

        source.stream.stop.assert_called_once()
        assert not source.is_healthy()


class TestDeviceDiscovery:
    """Test cases for device listing and system audio detection."""

    def test_list_audio_devices(self, mock_sd):
        mock_sd.query_devices.return_value = [
            {'name': 'Mic', 'max_input_channels': 1, 'max_output_channels': 0, 'default_samplerate': 44100.0},
            {'name': 'Speakers', 'max_input_channels': 0, 'max_output_channels': 2, 'default_samplerate': 48000.0},
        ]

        devices = list_audio_devices()

        assert [d['name'] for d in devices['input']] == ['Mic']
        assert [d['id'] for d in devices['output']] == [1]

    def test_list_audio_devices_failure(self, mock_sd):
        mock_sd.query_devices.side_effect = OSError("PortAudio not initialized")

        assert list_audio_devices() == {'input': [], 'output': []}

    @patch('dual_call_transcript.audio_capture._is_wsl', return_value=False)
    @patch('dual_call_transcript.audio_capture.platform.system', return_value='Windows')
    def test_find_system_audio_device_windows(self, mock_system, mock_wsl, device_list):
        assert find_system_audio_device(device_list) == 1

    @patch('dual_call_transcript.audio_capture._is_wsl', return_value=False)
    @patch('dual_call_transcript.audio_capture.platform.system', return_value='Linux')
    def test_find_system_audio_device_linux(self, mock_system, mock_wsl, device_list):
        assert find_system_audio_device(device_list) == 2

    @patch('dual_call_transcript.audio_capture._is_wsl', return_value=True)
    @patch('dual_call_transcript.audio_capture.platform.system', return_value='Linux')
    def test_wsl_uses_windows_names(self, mock_system, mock_wsl, device_list):
        assert find_system_audio_device(device_list) == 1

    @patch('dual_call_transcript.audio_capture._is_wsl', return_value=False)
    @patch('dual_call_transcript.audio_capture.platform.system', return_value='Darwin')
    def test_find_system_audio_device_not_found(self, mock_system, mock_wsl, device_list):
        assert find_system_audio_device(device_list) is None
