"""Capture device handles for the microphone and loopback roles."""

import asyncio
import time
from collections.abc import Callable
from typing import Any

import pyaudio

from .config import DEFAULT_CHANNELS, DEFAULT_CHUNK_SIZE
from .exceptions import DeviceError, DeviceNotFoundError, DevicePermissionError
from .logging_utils import get_logger
from .models import AudioFrame, Role

logger = get_logger(__name__)


def list_input_devices() -> list[dict[str, Any]]:
    """
    List audio devices that can be used for capture.

    Loopback sources (e.g. PulseAudio monitor devices) show up here as
    ordinary input devices.

    Returns:
        One dict per input device with index, name, channels and sample_rate

    Raises:
        DeviceError: If the audio system cannot be queried
    """
    pa = pyaudio.PyAudio()
    devices = []
    try:
        for i in range(pa.get_device_count()):
            try:
                info = pa.get_device_info_by_index(i)
            except OSError as e:
                logger.trace(f"  [{i}] Error getting device info: {e}")
                continue

            channels = info.get("maxInputChannels", 0)
            if channels > 0:
                devices.append(
                    {
                        "index": i,
                        "name": info.get("name", f"Device {i}"),
                        "channels": channels,
                        "sample_rate": int(info.get("defaultSampleRate", 0)),
                    }
                )
    except OSError as e:
        raise DeviceError(f"Failed to list audio devices: {e}") from e
    finally:
        pa.terminate()

    logger.debug(f"🎤 Found {len(devices)} input devices")
    return devices


class AudioCapture:
    """
    Owns one capture device and delivers role-tagged frames to the event loop.

    PyAudio runs the stream callback on its own thread; frames are handed to
    the sink with ``loop.call_soon_threadsafe`` so the sink always runs on
    the loop thread.
    """

    def __init__(
        self,
        role: Role,
        device_index: int | None = None,
        sample_rate: int | None = None,
        chunk_size: int | None = None,
        channels: int = DEFAULT_CHANNELS,
    ) -> None:
        """
        Initialize a capture handle.

        Args:
            role: Role tagged onto every frame
            device_index: PyAudio device index, None for the default input
            sample_rate: Capture rate in Hz, None for the device default
            chunk_size: Samples per callback
            channels: Requested channel count (capped at the device maximum)
        """
        self.role = role
        self.device_index = device_index
        self.sample_rate = sample_rate
        self.chunk_size = chunk_size if chunk_size is not None else DEFAULT_CHUNK_SIZE
        self.channels = channels

        if self.sample_rate is not None and self.sample_rate <= 0:
            raise ValueError("Sample rate must be positive")
        if self.chunk_size <= 0:
            raise ValueError("Chunk size must be positive")

        self._capturing = False
        self._pyaudio = None
        self._stream = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._sink: Callable[[AudioFrame], None] | None = None
        self._start_time = 0.0
        self._samples_delivered = 0

    def start_capture(
        self,
        sink: Callable[[AudioFrame], None],
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        """
        Open the device and start delivering frames.

        Args:
            sink: Non-blocking callable receiving each AudioFrame on the loop thread
            loop: Event loop to deliver on, defaults to the running loop

        Raises:
            DeviceError: If already capturing or the stream cannot be opened
            DeviceNotFoundError: If the device does not exist or has no inputs
            DevicePermissionError: If access to the device is denied
        """
        if self._capturing:
            raise DeviceError(f"Already capturing {self.role.value} audio")

        self._loop = loop or asyncio.get_running_loop()
        self._sink = sink

        try:
            self._pyaudio = pyaudio.PyAudio()
            device_info = self._resolve_device()

            device_name = device_info.get("name", "Unknown")
            max_channels = int(device_info.get("maxInputChannels", 0) or 0)
            if max_channels <= 0:
                raise DeviceNotFoundError(f"Device '{device_name}' has no input channels")

            if self.sample_rate is None:
                self.sample_rate = int(device_info.get("defaultSampleRate", 16000))
            self.channels = max(1, min(self.channels, max_channels))

            try:
                self._stream = self._pyaudio.open(
                    format=pyaudio.paInt16,
                    channels=self.channels,
                    rate=self.sample_rate,
                    input=True,
                    input_device_index=self.device_index,
                    frames_per_buffer=self.chunk_size,
                    stream_callback=self._on_audio,
                )
            except OSError as e:
                if "Permission denied" in str(e):
                    logger.error(f"❌ {self.role.value} device permission denied")
                    raise DevicePermissionError("Permission denied") from e
                logger.error(f"❌ Failed to open {self.role.value} stream: {e}")
                raise DeviceError(f"Failed to open audio stream: {e}") from e

            self._start_time = time.monotonic()
            self._samples_delivered = 0
            self._stream.start_stream()
            self._capturing = True
            logger.info(
                f"🎤 Capturing {self.role.value} from '{device_name}' "
                f"({self.sample_rate}Hz, {self.channels}ch)"
            )

        except Exception:
            self._release()
            raise

    def _resolve_device(self) -> dict[str, Any]:
        try:
            if self.device_index is None:
                return self._pyaudio.get_default_input_device_info()
            return self._pyaudio.get_device_info_by_index(self.device_index)
        except (OSError, ValueError) as e:
            target = "default input" if self.device_index is None else f"#{self.device_index}"
            logger.error(f"❌ No {self.role.value} device found ({target})")
            raise DeviceNotFoundError(f"No capture device found for {self.role.value}") from e

    def _on_audio(self, in_data: bytes, frame_count: int, time_info: Any, status: int) -> tuple:
        timestamp = self._start_time + self._samples_delivered / self.sample_rate
        self._samples_delivered += frame_count
        frame = AudioFrame(
            role=self.role,
            data=in_data,
            sample_rate=self.sample_rate,
            timestamp=timestamp,
            channels=self.channels,
        )
        loop, sink = self._loop, self._sink
        if loop is not None and sink is not None and not loop.is_closed():
            loop.call_soon_threadsafe(sink, frame)
        return (None, pyaudio.paContinue)

    def stop_capture(self) -> None:
        """Stop capturing and release the device. Safe to call repeatedly."""
        if not self._capturing:
            return

        self._capturing = False
        self._release()
        logger.debug(f"🎤 {self.role.value} capture stopped")

    def _release(self) -> None:
        self._sink = None
        if self._stream:
            try:
                if self._stream.is_active():
                    self._stream.stop_stream()
                self._stream.close()
            except OSError as e:
                logger.warning(f"⚠️ Error closing {self.role.value} stream: {e}")
            self._stream = None
        if self._pyaudio:
            self._pyaudio.terminate()
            self._pyaudio = None

    def is_capturing(self) -> bool:
        return self._capturing

    def get_debug_stats(self) -> dict[str, Any]:
        """
        Get debug statistics about audio capture.

        Returns:
            Dictionary with debug information
        """
        return {
            "role": self.role.value,
            "capturing": self._capturing,
            "device_index": self.device_index,
            "sample_rate": self.sample_rate,
            "channels": self.channels,
            "chunk_size": self.chunk_size,
            "samples_delivered": self._samples_delivered,
        }
