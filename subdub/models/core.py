"""Core media data models for the SubDub job engine."""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class Word:
    """A single recognized word with timing in seconds."""
    text: str
    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass(frozen=True)
class Segment:
    """A contiguous run of words grouped for subtitles and translation."""
    words: List[Word]
    text: str
    start_time: float
    end_time: float

    @classmethod
    def from_words(cls, words: List[Word]) -> "Segment":
        """Build a segment spanning the given words."""
        if not words:
            raise ValueError("Cannot build a segment from an empty word list")
        return cls(
            words=list(words),
            text=" ".join(word.text for word in words),
            start_time=words[0].start,
            end_time=words[-1].end,
        )

    @property
    def duration(self) -> float:
        """Calculate the duration of the segment."""
        return self.end_time - self.start_time

    @property
    def word_count(self) -> int:
        return len(self.words)


@dataclass
class TranscriptionResult:
    """Result of speech recognition over one audio file."""
    text: str
    words: List[Word] = field(default_factory=list)
    language: Optional[str] = None
    duration: Optional[float] = None

    @property
    def word_count(self) -> int:
        return len(self.words)


@dataclass(frozen=True)
class BilingualSegment:
    """A segment carrying both source and target-language text."""
    original: str
    translated: str
    start_time: float
    end_time: float

    @classmethod
    def untranslated(cls, segment: Segment) -> "BilingualSegment":
        """Duplicate the original text into the translated slot."""
        return cls(
            original=segment.text,
            translated=segment.text,
            start_time=segment.start_time,
            end_time=segment.end_time,
        )

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


@dataclass
class SynthesizedClip:
    """Generated speech for one bilingual segment.

    ``index`` is 1-based. ``audio_path`` is set once synthesis succeeded.
    """
    index: int
    text: str
    start_time: float
    end_time: float
    audio_path: Optional[str] = None

    @property
    def duration(self) -> float:
        """Target timing window length."""
        return self.end_time - self.start_time

    @property
    def expected_filename(self) -> str:
        return f"segment_{self.index:03d}.mp3"


@dataclass(frozen=True)
class Gap:
    """Silence to insert before the clip at ``position`` (0 = leading)."""
    position: int
    duration: float
