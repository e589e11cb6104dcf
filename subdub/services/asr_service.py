"""ASR (Automatic Speech Recognition) service implementation using faster-whisper."""

import logging
import os
import threading
from typing import Any, Dict, List, Optional

try:
    from faster_whisper import WhisperModel
except ImportError:
    WhisperModel = None

from .base import BaseASRService
from ..models.core import TranscriptionResult, Word


logger = logging.getLogger(__name__)


class ASRService(BaseASRService):
    """Word-level speech recognition with faster-whisper.

    Models are loaded once per size and shared by every job that asks for
    that size.
    """

    def __init__(self, device: str = "cpu", compute_type: str = "int8"):
        self.device = device
        self.compute_type = compute_type
        self._models: Dict[str, "WhisperModel"] = {}
        self._current_model_size: Optional[str] = None
        self._lock = threading.Lock()

    def initialize(self, model_size: str = "base") -> None:
        """Load the faster-whisper model with the specified size.

        Raises:
            RuntimeError: If faster-whisper is not available or model loading fails
        """
        if WhisperModel is None:
            raise RuntimeError("faster-whisper is not available. Please install it.")

        with self._lock:
            if model_size in self._models:
                self._current_model_size = model_size
                return

            try:
                logger.info(f"Loading faster-whisper model: {model_size}")
                self._models[model_size] = WhisperModel(
                    model_size,
                    device=self.device,
                    compute_type=self.compute_type
                )
            except Exception as e:
                logger.error(f"Failed to load model {model_size}: {e}")
                raise RuntimeError(f"Failed to load ASR model: {e}")

            self._current_model_size = model_size
            logger.info(f"Successfully loaded model: {model_size}")

    def transcribe(
        self,
        audio_path: str,
        language: Optional[str] = None,
        model_size: Optional[str] = None
    ) -> TranscriptionResult:
        """Transcribe an audio file into text and word timestamps.

        Raises:
            FileNotFoundError: If the audio file doesn't exist
            RuntimeError: If no model is loaded or transcription fails
        """
        model = self._model(model_size)

        if not os.path.exists(audio_path):
            raise FileNotFoundError(f"Audio file not found: {audio_path}")

        try:
            logger.info(f"Transcribing audio: {audio_path}")
            segments, info = model.transcribe(
                audio_path,
                language=language,
                task="transcribe",
                vad_filter=True,
                vad_parameters=dict(min_silence_duration_ms=500),
                word_timestamps=True,
            )
            # Segments are a lazy generator; decoding happens here
            whisper_segments = list(segments)
        except Exception as e:
            logger.error(f"Transcription failed: {e}")
            raise RuntimeError(f"Transcription failed: {e}")

        words = self._collect_words(whisper_segments)
        text = " ".join(segment.text.strip() for segment in whisper_segments).strip()

        logger.info(f"Transcription completed: {len(whisper_segments)} segments, {len(words)} words")
        return TranscriptionResult(
            text=text,
            words=words,
            language=getattr(info, 'language', language),
            duration=getattr(info, 'duration', None),
        )

    def _model(self, model_size: Optional[str]) -> "WhisperModel":
        with self._lock:
            size = model_size or self._current_model_size
            model = self._models.get(size) if size else None
        if model is None:
            if size:
                raise RuntimeError(f"ASR model '{size}' is not initialized")
            raise RuntimeError("ASR model not initialized. Call initialize() first.")
        return model

    @staticmethod
    def _collect_words(whisper_segments: List[Any]) -> List[Word]:
        words = []
        for segment in whisper_segments:
            for word in segment.words or []:
                text = word.word.strip()
                if not text:
                    continue
                if word.end < word.start:
                    logger.warning(f"Invalid word timing: {word.start} > {word.end} ({text!r})")
                    continue
                words.append(Word(text=text, start=float(word.start), end=float(word.end)))
        return words
