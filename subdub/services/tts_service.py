"""Text-to-Speech service implementation using Edge-TTS."""

import asyncio
import logging
import os
from typing import Dict, List

try:
    import edge_tts
except ImportError:
    edge_tts = None

from .base import BaseTTSService


logger = logging.getLogger(__name__)


class TTSService(BaseTTSService):
    """Text-to-Speech service using Microsoft Edge TTS.

    Every call runs its own event loop, so jobs on different worker threads
    can synthesize concurrently.
    """

    def __init__(self, rate: str = "+0%"):
        if edge_tts is None:
            raise ImportError("edge-tts package is required for TTS functionality")

        self.rate = rate
        self.voice_cache: Dict[str, List[str]] = {}

    def synthesize(self, text: str, voice: str, output_path: str) -> str:
        """Synthesize ``text`` to an MP3 file.

        Raises:
            ValueError: If the text is empty
            RuntimeError: If synthesis fails
        """
        if not text.strip():
            raise ValueError("Cannot generate speech from empty text")

        try:
            asyncio.run(self._synthesize_async(text, voice, output_path))
        except Exception as e:
            if os.path.exists(output_path):
                os.unlink(output_path)
            raise RuntimeError(f"TTS generation failed: {str(e)}")

        if not os.path.exists(output_path) or os.path.getsize(output_path) == 0:
            raise RuntimeError("TTS generation failed - no audio produced")
        return output_path

    async def _synthesize_async(self, text: str, voice: str, output_path: str):
        communicate = edge_tts.Communicate(text, voice, rate=self.rate)
        await communicate.save(output_path)

    def get_available_voices(self, language: str) -> List[str]:
        """Voice short names whose locale matches ``language`` (e.g. 'ru' or 'ru-RU')."""
        if language in self.voice_cache:
            return self.voice_cache[language]

        try:
            voices = asyncio.run(edge_tts.list_voices())
        except Exception as e:
            logger.warning(f"Failed to get voices for language {language}: {e}")
            return []

        prefix = language.lower()
        language_voices = [
            voice['ShortName'] for voice in voices
            if voice.get('Locale', '').lower().startswith(prefix)
        ]
        self.voice_cache[language] = language_voices
        return language_voices
