"""Sentence segmentation of word-level timestamps into subtitle segments."""

import logging
from typing import List, Optional

from ..models.core import Segment, Word


logger = logging.getLogger(__name__)

MAX_WORDS_PER_SEGMENT = 15
MAX_SEGMENT_DURATION = 7.0
MIN_PAUSE_DURATION = 0.5
DEFAULT_FIXED_DURATION = 7.0
SENTENCE_TERMINATORS = ('.', '!', '?')


class SegmentationService:
    """Groups recognized words into subtitle-worthy segments.

    Two policies are supported. Fixed-duration mode closes a segment once it
    spans at least ``fixed_duration`` seconds. Dynamic mode closes at the
    first of: word limit, duration limit, sentence-ending punctuation, or a
    long pause before the next word. Leftover words are always flushed into
    a final segment.
    """

    def __init__(
        self,
        max_words_per_segment: int = MAX_WORDS_PER_SEGMENT,
        max_segment_duration: float = MAX_SEGMENT_DURATION,
        min_pause_duration: float = MIN_PAUSE_DURATION,
        use_fixed_duration: bool = False,
        fixed_duration: float = DEFAULT_FIXED_DURATION
    ):
        self.max_words_per_segment = max_words_per_segment
        self.max_segment_duration = max_segment_duration
        self.min_pause_duration = min_pause_duration
        self.use_fixed_duration = use_fixed_duration
        self.fixed_duration = fixed_duration

    def segment(
        self,
        words: List[Word],
        use_fixed_duration: Optional[bool] = None,
        fixed_duration: Optional[float] = None
    ) -> List[Segment]:
        """Segment words into subtitle segments.

        Args:
            words: Words in source order with timestamps
            use_fixed_duration: Override for fixed-duration mode (None = instance default)
            fixed_duration: Override for the fixed duration (None = instance default)

        Returns:
            Segments that partition ``words`` exactly, in order
        """
        fixed_mode = self.use_fixed_duration if use_fixed_duration is None else use_fixed_duration
        target = self.fixed_duration if fixed_duration is None else fixed_duration

        if not words:
            logger.debug("No words to segment")
            return []

        segments: List[Segment] = []
        current: List[Word] = []
        last_index = len(words) - 1

        for index, word in enumerate(words):
            current.append(word)
            next_word = words[index + 1] if index < last_index else None

            if fixed_mode:
                should_break = self._reached_fixed_duration(current, word, target)
            else:
                should_break = self._should_break_dynamic(current, word, next_word)

            if should_break or next_word is None:
                segments.append(Segment.from_words(current))
                current = []

        logger.debug(f"Segmented {len(words)} words into {len(segments)} segments")
        return segments

    @staticmethod
    def _reached_fixed_duration(current: List[Word], word: Word, fixed_duration: float) -> bool:
        return word.end - current[0].start >= fixed_duration

    def _should_break_dynamic(self, current: List[Word], word: Word, next_word: Optional[Word]) -> bool:
        if len(current) >= self.max_words_per_segment:
            return True

        if word.end - current[0].start >= self.max_segment_duration:
            return True

        if ends_sentence(word.text):
            return True

        if next_word is not None and next_word.start - word.end >= self.min_pause_duration:
            return True

        return False


def ends_sentence(text: str) -> bool:
    """Check if a word ends with sentence-terminal punctuation."""
    return text.strip().endswith(SENTENCE_TERMINATORS)


def segment_words(
    words: List[Word],
    use_fixed_duration: bool = False,
    fixed_duration: float = DEFAULT_FIXED_DURATION
) -> List[Segment]:
    """Segment words with the default limits."""
    return SegmentationService().segment(words, use_fixed_duration, fixed_duration)
