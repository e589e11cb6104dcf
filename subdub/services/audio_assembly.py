"""Reconstruction of a continuous dubbed audio track from synthesized clips."""

import logging
import os
from typing import Callable, List, Optional, Tuple

from ..exceptions import AssemblyFailed
from ..models.core import Gap, SynthesizedClip
from .base import COLLABORATOR_ERRORS, BaseMediaService
from .events import CancellationToken


logger = logging.getLogger(__name__)

# Shorter silences cannot be rendered reliably by the transcoder
MIN_GAP_DURATION = 0.05


def compute_gaps(clips: List[SynthesizedClip], min_gap: float = MIN_GAP_DURATION) -> List[Gap]:
    """Silence schedule for clips in start-time order.

    A leading gap is emitted when the first clip starts after ``min_gap``.
    Between consecutive clips the gap is ``next.start - current.end`` and is
    dropped when shorter than ``min_gap``. No trailing gap is produced.
    """
    ordered = sorted(clips, key=lambda clip: clip.start_time)
    gaps: List[Gap] = []

    if not ordered:
        return gaps

    if ordered[0].start_time > min_gap:
        gaps.append(Gap(position=0, duration=ordered[0].start_time))

    for index in range(len(ordered) - 1):
        duration = ordered[index + 1].start_time - ordered[index].end_time
        if duration >= min_gap:
            gaps.append(Gap(position=index + 1, duration=duration))

    return gaps


def build_timeline(clips: List[SynthesizedClip], gaps: List[Gap]) -> List[Tuple[str, object]]:
    """Interleave silences and clips: [leading silence] clip1 [silence] clip2 ...

    Returns ``('silence', Gap)`` and ``('clip', SynthesizedClip)`` entries.
    """
    ordered = sorted(clips, key=lambda clip: clip.start_time)
    gaps_by_position = {gap.position: gap for gap in gaps}
    timeline: List[Tuple[str, object]] = []

    for position, clip in enumerate(ordered):
        if position in gaps_by_position:
            timeline.append(('silence', gaps_by_position[position]))
        timeline.append(('clip', clip))

    return timeline


def missing_audio(clips: List[SynthesizedClip]) -> List[str]:
    """Clips whose audio artifact is absent on disk."""
    missing = []
    for clip in clips:
        if not clip.audio_path:
            missing.append(f"segment_{clip.index}")
        elif not os.path.exists(clip.audio_path):
            missing.append(clip.audio_path)
    return missing


class AudioAssembler:
    """Concatenates clips and rendered silences into one audio track."""

    def __init__(self, media_service: BaseMediaService, min_gap: float = MIN_GAP_DURATION):
        self.media_service = media_service
        self.min_gap = min_gap

    def assemble(
        self,
        clips: List[SynthesizedClip],
        output_path: str,
        work_dir: str,
        token: Optional[CancellationToken] = None,
        progress_callback: Optional[Callable[[float], None]] = None
    ) -> str:
        """Assemble clips with timing-preserving silences into ``output_path``.

        Args:
            clips: Synthesized clips with audio paths
            output_path: Destination of the assembled track
            work_dir: Scratch directory for silence files
            token: Optional cancellation token checked between silences
            progress_callback: Optional callback receiving step progress (0.0-1.0)

        Returns:
            Path to the assembled audio

        Raises:
            AssemblyFailed: If a clip is missing or a sub-step fails
        """
        if not clips:
            raise AssemblyFailed("No clips to assemble")

        missing = missing_audio(clips)
        if missing:
            raise AssemblyFailed(
                f"Missing audio for {len(missing)} clip(s)",
                ", ".join(missing[:3])
            )

        gaps = compute_gaps(clips, self.min_gap)
        logger.info(f"Assembling {len(clips)} clips with {len(gaps)} gaps")
        if progress_callback:
            progress_callback(0.2)

        silence_dir = os.path.join(work_dir, "silence")
        os.makedirs(silence_dir, exist_ok=True)

        inputs: List[str] = []
        for kind, item in build_timeline(clips, gaps):
            if kind == 'clip':
                inputs.append(item.audio_path)
                continue

            if token is not None:
                token.raise_if_cancelled()
            silence_path = os.path.join(silence_dir, f"silence_{item.position:03d}.mp3")
            try:
                self.media_service.generate_silence(item.duration, silence_path)
            except COLLABORATOR_ERRORS as e:
                raise AssemblyFailed("Failed to generate silence", str(e)) from e
            inputs.append(silence_path)

        if progress_callback:
            progress_callback(0.7)

        if token is not None:
            token.raise_if_cancelled()

        try:
            self.media_service.concatenate(inputs, output_path)
        except COLLABORATOR_ERRORS as e:
            raise AssemblyFailed("Failed to concatenate audio files", str(e)) from e

        if progress_callback:
            progress_callback(1.0)

        logger.info(f"Audio assembly completed: {output_path}")
        return output_path
