"""Data models for the SubDub job engine."""

from .core import BilingualSegment, Gap, Segment, SynthesizedClip, TranscriptionResult, Word
from .job import (
    EventType,
    Job,
    JobConfig,
    JobEvent,
    JobStatus,
    OutputFiles,
    PipelineMode,
    Step,
    SubtitleFormat,
)

__all__ = [
    'BilingualSegment',
    'Gap',
    'Segment',
    'SynthesizedClip',
    'TranscriptionResult',
    'Word',
    'EventType',
    'Job',
    'JobConfig',
    'JobEvent',
    'JobStatus',
    'OutputFiles',
    'PipelineMode',
    'Step',
    'SubtitleFormat',
]
