"""
Text-to-speech functionality using Google Cloud TTS.
"""
import asyncio
import io
import logging
import os
import shutil
import signal
import tempfile
from typing import Optional, Sequence, Tuple

from .ports import SpeechSynthesisPort, SpeechEvent, SpeechOptions, SynthesisEventType
from ..processing import apply_volume, read_wav, write_wav
from ....config import LANGUAGE_CODE, PLAYER_COMMANDS, SAMPLE_RATE_TARGET

logger = logging.getLogger("speech_tts")


class GoogleSpeechSynthesizer(SpeechSynthesisPort):
    """Google Cloud Text-to-Speech played through a system audio player."""

    def __init__(self,
                 options: Optional[SpeechOptions] = None,
                 language_code: str = LANGUAGE_CODE,
                 player_commands: Sequence[Tuple[str, ...]] = PLAYER_COMMANDS,
                 client=None):
        super().__init__()
        self.options = options or SpeechOptions()
        self.language_code = language_code
        self.player_commands = player_commands
        self._client = client
        self._task: Optional[asyncio.Task] = None
        self._player: Optional[asyncio.subprocess.Process] = None
        self._current: Optional[int] = None
        self._paused = False

    def _find_player(self) -> Optional[Tuple[str, ...]]:
        for command in self.player_commands:
            if shutil.which(command[0]):
                return tuple(command)
        return None

    def is_supported(self) -> bool:
        return self._find_player() is not None

    @property
    def is_speaking(self) -> bool:
        return self._current is not None

    def _get_client(self):
        if self._client is None:
            from google.cloud import texttospeech
            self._client = texttospeech.TextToSpeechAsyncClient()
        return self._client

    def speak(self, text: str, options: Optional[SpeechOptions] = None) -> int:
        self.stop()
        sequence = self._next_sequence()
        self._current = sequence
        self._task = asyncio.get_running_loop().create_task(
            self._run(sequence, text, options or self.options)
        )
        return sequence

    def pause(self) -> None:
        """Pause the current utterance; a player not started yet starts stopped."""
        if self._current is None or self._paused:
            return
        self._paused = True
        if self._player is not None and self._player.returncode is None:
            self._player.send_signal(signal.SIGSTOP)
        logger.debug("Playback paused")

    def resume(self) -> None:
        if not self._paused:
            return
        self._paused = False
        if self._player is not None and self._player.returncode is None:
            self._player.send_signal(signal.SIGCONT)
        logger.debug("Playback resumed")

    def stop(self) -> None:
        if self._current is None:
            return
        logger.debug(f"Stopping utterance #{self._current}")
        self._current = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self._terminate_player()

    async def _run(self, sequence: int, text: str, options: SpeechOptions) -> None:
        try:
            audio = await self._synthesize(text, options)
            if sequence != self._current:
                return
            self._publish(SpeechEvent(SynthesisEventType.START.value, sequence))
            await self._play(audio)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Google TTS failed: {e}")
            if sequence == self._current:
                self._current = None
                self._paused = False
                self._publish(SpeechEvent(SynthesisEventType.ERROR.value, sequence, reason=str(e)))
            return

        if sequence == self._current:
            self._current = None
            self._publish(SpeechEvent(SynthesisEventType.END.value, sequence))

    async def _synthesize(self, text: str, options: SpeechOptions) -> bytes:
        """Request LINEAR16 audio and apply the volume as PCM gain."""
        from google.cloud import texttospeech

        response = await self._get_client().synthesize_speech(
            input=texttospeech.SynthesisInput(text=text),
            voice=texttospeech.VoiceSelectionParams(
                language_code=self.language_code,
                name=options.voice_id,
            ),
            audio_config=texttospeech.AudioConfig(
                audio_encoding=texttospeech.AudioEncoding.LINEAR16,
                sample_rate_hertz=SAMPLE_RATE_TARGET,
                speaking_rate=options.rate,
            ),
        )

        samples, sr, channels = read_wav(response.audio_content)
        buffer = io.BytesIO()
        write_wav(buffer, apply_volume(samples, options.volume), sr, channels)
        return buffer.getvalue()

    def _write_temp_wav(self, audio: bytes) -> str:
        with tempfile.NamedTemporaryFile(suffix=".wav", delete=False) as tmp_file:
            tmp_file.write(audio)
            return tmp_file.name

    async def _play(self, audio: bytes) -> None:
        command = self._find_player()
        if command is None:
            raise RuntimeError("No audio player found (tried " +
                               ", ".join(c[0] for c in self.player_commands) + ")")

        wav_path = self._write_temp_wav(audio)
        player = None
        try:
            player = await asyncio.create_subprocess_exec(
                *command, wav_path,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
            self._player = player
            if self._paused:
                player.send_signal(signal.SIGSTOP)
            returncode = await player.wait()
            if returncode not in (0, -signal.SIGTERM):
                raise RuntimeError(f"{command[0]} exited with status {returncode}")
        finally:
            # Only this utterance's player; a newer one may already be running
            if player is not None and self._player is player:
                self._terminate_player()
            elif player is not None and player.returncode is None:
                try:
                    player.terminate()
                except ProcessLookupError:
                    pass
            try:
                os.unlink(wav_path)
            except OSError:
                pass

    def _terminate_player(self) -> None:
        player, self._player = self._player, None
        paused, self._paused = self._paused, False
        if player is None or player.returncode is not None:
            return
        try:
            player.terminate()
            if paused:
                player.send_signal(signal.SIGCONT)
        except ProcessLookupError:
            pass
