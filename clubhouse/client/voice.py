"""Local microphone capture for voice-only meetings. Nothing is transmitted."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence

logger = logging.getLogger(__name__)

DEFAULT_AUDIO_CONSTRAINTS: Dict[str, Any] = {
    "echoCancellation": True,
    "noiseSuppression": True,
    "autoGainControl": True,
    "sampleRate": 44100,
}


class VoiceCaptureError(Exception):
    pass


class AudioTrack(Protocol):
    enabled: bool

    def stop(self) -> None: ...


class CaptureStream(Protocol):
    tracks: Sequence[AudioTrack]

    def close(self) -> None: ...


class CaptureBackend(Protocol):
    """Opens an input device; supplied by the embedding application."""

    async def open(self, constraints: Dict[str, Any]) -> CaptureStream: ...


class VoiceCapture:
    """
    Holds at most one open capture stream.

    `acquire()` either leaves a usable stream behind or nothing at all;
    `release()` stops every track and closes the stream and may be called
    any number of times.
    """

    def __init__(
        self,
        backend: CaptureBackend,
        constraints: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.backend = backend
        self.constraints = dict(constraints or DEFAULT_AUDIO_CONSTRAINTS)
        self._stream: Optional[CaptureStream] = None
        self.is_muted = False

    @property
    def is_active(self) -> bool:
        return self._stream is not None

    @property
    def tracks(self) -> List[AudioTrack]:
        return list(self._stream.tracks) if self._stream is not None else []

    async def acquire(self) -> None:
        if self._stream is not None:
            return
        try:
            stream = await self.backend.open(dict(self.constraints))
        except Exception as exc:
            logger.warning("Microphone capture failed: %s", exc)
            raise VoiceCaptureError(str(exc) or "Microphone unavailable") from exc
        if not list(stream.tracks):
            self._close_stream(stream)
            raise VoiceCaptureError("No audio input tracks available")
        self._stream = stream
        self.is_muted = False
        logger.info("Microphone capture started with %d track(s)", len(stream.tracks))

    def release(self) -> None:
        stream, self._stream = self._stream, None
        self.is_muted = False
        if stream is not None:
            self._close_stream(stream)
            logger.info("Microphone capture released")

    @staticmethod
    def _close_stream(stream: CaptureStream) -> None:
        try:
            for track in stream.tracks:
                track.stop()
        finally:
            stream.close()

    def toggle_mute(self) -> bool:
        """Flip every track's enabled flag; returns the new muted state."""
        tracks = self.tracks
        if not tracks:
            raise VoiceCaptureError("Microphone is not active")
        for track in tracks:
            track.enabled = not track.enabled
        self.is_muted = not tracks[0].enabled
        return self.is_muted

    async def __aenter__(self) -> "VoiceCapture":
        await self.acquire()
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.release()
