"""
Speech-to-text functionality using Google Cloud Speech streaming recognition.
"""
import asyncio
import logging
from typing import AsyncIterator, Optional

from google.api_core import exceptions as google_exceptions

from .ports import SpeechRecognitionPort, SpeechEvent, RecognitionEventType
from ..processing import to_recognition_pcm16
from ....config import LANGUAGE_CODE, SAMPLE_RATE_TARGET, CAPTURE_CHUNK_MS, CHANNELS
from ....utils import import_quietly, with_suppressed_audio_warnings

logger = logging.getLogger("speech_stt")


def _load_pyaudio():
    # PyAudio prints ALSA/JACK noise to stderr on import
    return import_quietly("pyaudio")


def error_reason(exc: BaseException) -> str:
    """Map a recognition failure onto a short reason code."""
    if isinstance(exc, google_exceptions.PermissionDenied):
        return "not-allowed"
    if isinstance(exc, google_exceptions.Unauthenticated):
        return "service-not-allowed"
    if isinstance(exc, (google_exceptions.ServiceUnavailable, google_exceptions.DeadlineExceeded)):
        return "network"
    if isinstance(exc, OSError):
        return "audio-capture"
    return "aborted"


class GoogleSpeechRecognizer(SpeechRecognitionPort):
    """Microphone capture via PyAudio streamed to Google Cloud Speech."""

    def __init__(self,
                 language_code: str = LANGUAGE_CODE,
                 sample_rate: int = SAMPLE_RATE_TARGET,
                 chunk_ms: int = CAPTURE_CHUNK_MS,
                 device_index: Optional[int] = None,
                 client=None):
        super().__init__()
        self.language_code = language_code
        self.sample_rate = sample_rate
        self.chunk_ms = chunk_ms
        self.device_index = device_index
        self._client = client
        self._task: Optional[asyncio.Task] = None
        self._current: Optional[int] = None

    @with_suppressed_audio_warnings
    def is_supported(self) -> bool:
        try:
            pyaudio = _load_pyaudio()
        except ImportError:
            logger.warning("PyAudio is not installed; install the 'voice' extra")
            return False

        pa = pyaudio.PyAudio()
        try:
            for i in range(pa.get_device_count()):
                if pa.get_device_info_by_index(i).get("maxInputChannels", 0) > 0:
                    return True
            return False
        finally:
            pa.terminate()

    @property
    def is_active(self) -> bool:
        return self._current is not None

    def _get_client(self):
        if self._client is None:
            from google.cloud import speech
            self._client = speech.SpeechAsyncClient()
        return self._client

    def start(self) -> int:
        self.stop()
        sequence = self._next_sequence()
        self._current = sequence
        self._task = asyncio.get_running_loop().create_task(self._run(sequence))
        logger.debug(f"Recognition run #{sequence} started")
        return sequence

    def stop(self) -> None:
        if self._current is None:
            return
        logger.debug(f"Recognition run #{self._current} stopped")
        self._current = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    @with_suppressed_audio_warnings
    def _open_stream(self, loop: asyncio.AbstractEventLoop, chunks: asyncio.Queue):
        """Open a PyAudio callback stream feeding raw chunks into the loop's queue."""
        pyaudio = _load_pyaudio()
        pa = pyaudio.PyAudio()
        try:
            if self.device_index is None:
                info = pa.get_default_input_device_info()
            else:
                info = pa.get_device_info_by_index(self.device_index)
            rate = int(info.get("defaultSampleRate", self.sample_rate))

            def callback(in_data, frame_count, time_info, status):
                # Runs on PortAudio's thread
                loop.call_soon_threadsafe(chunks.put_nowait, in_data)
                return None, pyaudio.paContinue

            stream = pa.open(
                format=pyaudio.paInt16,
                channels=CHANNELS,
                rate=rate,
                input=True,
                input_device_index=int(info["index"]),
                frames_per_buffer=max(1, rate * self.chunk_ms // 1000),
                stream_callback=callback,
            )
        except Exception:
            pa.terminate()
            raise
        logger.info(f"Microphone open: {info.get('name')} at {rate} Hz")
        return pa, stream, rate

    async def _requests(self, chunks: asyncio.Queue, rate: int) -> AsyncIterator:
        from google.cloud import speech

        yield speech.StreamingRecognizeRequest(
            streaming_config=speech.StreamingRecognitionConfig(
                config=speech.RecognitionConfig(
                    encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
                    sample_rate_hertz=self.sample_rate,
                    language_code=self.language_code,
                    enable_automatic_punctuation=True,
                ),
                interim_results=True,
            )
        )
        while True:
            raw = await chunks.get()
            yield speech.StreamingRecognizeRequest(
                audio_content=to_recognition_pcm16(raw, CHANNELS, rate, self.sample_rate)
            )

    async def _run(self, sequence: int) -> None:
        loop = asyncio.get_running_loop()
        chunks: asyncio.Queue = asyncio.Queue()
        pa = stream = None
        try:
            pa, stream, rate = self._open_stream(loop, chunks)
            responses = await self._get_client().streaming_recognize(
                requests=self._requests(chunks, rate)
            )
            async for response in responses:
                for result in response.results:
                    if not result.alternatives or sequence != self._current:
                        continue
                    kind = (RecognitionEventType.FINAL_RESULT if result.is_final
                            else RecognitionEventType.PARTIAL_RESULT)
                    self._publish(SpeechEvent(kind.value, sequence, text=result.alternatives[0].transcript))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Speech recognition failed: {e}")
            if sequence == self._current:
                self._publish(SpeechEvent(RecognitionEventType.ERROR.value, sequence, reason=error_reason(e)))
        finally:
            self._close_stream(pa, stream)

        if sequence == self._current:
            self._current = None
            self._task = None
            self._publish(SpeechEvent(RecognitionEventType.ENDED.value, sequence))

    @with_suppressed_audio_warnings
    def _close_stream(self, pa, stream) -> None:
        if stream is not None:
            try:
                stream.stop_stream()
                stream.close()
            except OSError as e:
                logger.warning(f"Error closing microphone stream: {e}")
        if pa is not None:
            pa.terminate()
