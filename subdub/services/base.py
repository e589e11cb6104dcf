"""Base service interfaces for the external capabilities the engine consumes.

Implementations signal failure by raising one of ``COLLABORATOR_ERRORS``;
the pipeline steps map those onto the job-scoped error taxonomy.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..models.core import BilingualSegment, TranscriptionResult
from ..models.job import SubtitleFormat


# Collaborators report failure with these; anything else is a defect.
COLLABORATOR_ERRORS = (RuntimeError, OSError, ValueError)


class BaseMediaService(ABC):
    """Abstract media prober/transcoder."""

    @abstractmethod
    def extract_audio(self, video_path: str, output_path: str) -> str:
        """Extract the audio track of a media file to ``output_path``."""
        pass

    @abstractmethod
    def probe_duration(self, path: str) -> Optional[float]:
        """Return the media duration in seconds, or None if unknown."""
        pass

    @abstractmethod
    def transform_tempo(self, input_path: str, factors: List[float], output_path: str) -> str:
        """Apply a chain of tempo factors, each within [0.5, 2.0], in order."""
        pass

    @abstractmethod
    def generate_silence(self, duration: float, output_path: str) -> str:
        """Render ``duration`` seconds of silence."""
        pass

    @abstractmethod
    def concatenate(self, input_paths: List[str], output_path: str) -> str:
        """Concatenate audio files in the given order."""
        pass

    @abstractmethod
    def mux(
        self,
        video_path: str,
        audio_path: str,
        output_path: str,
        subtitle_path: Optional[str] = None
    ) -> str:
        """Combine a video stream, a replacement audio track and optional subtitles."""
        pass


class BaseASRService(ABC):
    """Abstract base class for Automatic Speech Recognition services."""

    @abstractmethod
    def initialize(self, model_size: str = "base") -> None:
        """Prepare the model. Repeat calls after success are no-ops."""
        pass

    @abstractmethod
    def transcribe(
        self,
        audio_path: str,
        language: Optional[str] = None,
        model_size: Optional[str] = None
    ) -> TranscriptionResult:
        """Transcribe audio into full text plus word timestamps.

        ``model_size`` selects an initialized model; None means the last one.
        """
        pass


class BaseTranslationService(ABC):
    """Abstract base class for translation services."""

    @abstractmethod
    def translate(self, text: str, source_language: str, target_language: str) -> str:
        """Translate one segment's text."""
        pass


class BaseTTSService(ABC):
    """Abstract base class for Text-to-Speech services."""

    @abstractmethod
    def synthesize(self, text: str, voice: str, output_path: str) -> str:
        """Synthesize ``text`` with ``voice`` into ``output_path``."""
        pass


class BaseSubtitleWriter(ABC):
    """Abstract subtitle file writer."""

    @abstractmethod
    def write(
        self,
        subtitle_format: SubtitleFormat,
        segments: List[BilingualSegment],
        original_path: str,
        translated_path: Optional[str] = None
    ) -> None:
        """Write original-text subtitles, and translated ones when a path is given."""
        pass
