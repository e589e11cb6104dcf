"""Tempo correction of synthesized clips to fit their target timing window."""

import logging
import shutil
from dataclasses import dataclass
from typing import List, Optional

from ..exceptions import SynthesisFailed
from .base import COLLABORATOR_ERRORS, BaseMediaService
from .events import CancellationToken


logger = logging.getLogger(__name__)

TEMPO_TOLERANCE = 0.05
MIN_TEMPO_FACTOR = 0.25
MAX_TEMPO_FACTOR = 4.0
MIN_STEP_FACTOR = 0.5
MAX_STEP_FACTOR = 2.0


def tempo_factor(measured_duration: float, target_duration: float) -> float:
    """Ratio of measured to target duration (>1 means speed up)."""
    if target_duration <= 0:
        raise ValueError(f"Target duration must be positive, got {target_duration}")
    return measured_duration / target_duration


def clamp_factor(factor: float) -> float:
    return min(max(factor, MIN_TEMPO_FACTOR), MAX_TEMPO_FACTOR)


def needs_correction(factor: float) -> bool:
    return abs(factor - 1.0) >= TEMPO_TOLERANCE


def build_tempo_chain(factor: float) -> List[float]:
    """Decompose a factor into elementary steps within [0.5, 2.0].

    The factor is clamped to [0.25, 4.0] first. The product of the returned
    chain equals the clamped factor.

    Examples:
        >>> build_tempo_chain(3.0)
        [2.0, 1.5]
        >>> build_tempo_chain(0.3)
        [0.5, 0.6]
    """
    remaining = clamp_factor(factor)
    chain: List[float] = []

    while remaining > MAX_STEP_FACTOR:
        chain.append(MAX_STEP_FACTOR)
        remaining /= MAX_STEP_FACTOR

    while remaining < MIN_STEP_FACTOR:
        chain.append(MIN_STEP_FACTOR)
        remaining /= MIN_STEP_FACTOR

    chain.append(remaining)
    return chain


@dataclass
class TempoResult:
    """Outcome of correcting one clip."""
    output_path: str
    measured_duration: float
    target_duration: float
    factor: float
    chain: List[float]
    actual_duration: Optional[float]

    @property
    def adjusted(self) -> bool:
        return bool(self.chain)


class TempoCorrector:
    """Speeds up or slows down a clip so it fits its target window."""

    def __init__(self, media_service: BaseMediaService):
        self.media_service = media_service

    def correct(
        self,
        input_path: str,
        output_path: str,
        target_duration: float,
        token: Optional[CancellationToken] = None
    ) -> TempoResult:
        """Write a tempo-corrected copy of ``input_path`` to ``output_path``.

        Raises:
            SynthesisFailed: If the clip cannot be measured or transformed
        """
        measured = self._probe(input_path)
        if measured is None:
            raise SynthesisFailed("Failed to detect audio duration", input_path)

        if target_duration <= 0:
            logger.warning(f"Non-positive target duration for {input_path}, using clip as-is")
            return self._copy(input_path, output_path, measured, target_duration, 1.0)

        factor = tempo_factor(measured, target_duration)
        if not needs_correction(factor):
            logger.debug(f"Duration OK ({measured:.2f}s), no adjustment needed")
            return self._copy(input_path, output_path, measured, target_duration, factor)

        if token is not None:
            token.raise_if_cancelled()

        chain = build_tempo_chain(factor)
        logger.info(
            f"Adjusting speed: {factor:.2f}x ({measured:.2f}s -> {target_duration:.2f}s), "
            f"chain {chain}"
        )

        try:
            self.media_service.transform_tempo(input_path, chain, output_path)
        except COLLABORATOR_ERRORS as e:
            raise SynthesisFailed("Speed adjustment failed", str(e)) from e

        actual = self._probe(output_path)
        if actual is None:
            logger.warning(f"Adjustment succeeded but cannot verify duration of {output_path}")
        else:
            logger.debug(f"Adjusted: {actual:.2f}s (target: {target_duration:.2f}s)")

        return TempoResult(
            output_path=output_path,
            measured_duration=measured,
            target_duration=target_duration,
            factor=factor,
            chain=chain,
            actual_duration=actual,
        )

    def _probe(self, path: str) -> Optional[float]:
        try:
            return self.media_service.probe_duration(path)
        except COLLABORATOR_ERRORS as e:
            raise SynthesisFailed("Failed to detect audio duration", str(e)) from e

    @staticmethod
    def _copy(
        input_path: str,
        output_path: str,
        measured: float,
        target_duration: float,
        factor: float
    ) -> TempoResult:
        try:
            shutil.copyfile(input_path, output_path)
        except OSError as e:
            raise SynthesisFailed("Failed to copy clip", str(e)) from e
        return TempoResult(
            output_path=output_path,
            measured_duration=measured,
            target_duration=target_duration,
            factor=factor,
            chain=[],
            actual_duration=measured,
        )
