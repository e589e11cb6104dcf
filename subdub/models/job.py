"""Job, configuration and progress models for the SubDub job engine."""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from ..exceptions import ConfigurationError


SUPPORTED_WHISPER_MODELS = ['tiny', 'base', 'small', 'medium', 'large-v2', 'large-v3']


class JobStatus(Enum):
    """Status enumeration for processing jobs."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELLED)


class Step(Enum):
    """Pipeline steps in execution order."""
    IDLE = 0
    EXTRACT_AUDIO = 1
    TRANSCRIBE = 2
    TRANSLATE = 3
    GENERATE_SUBTITLES = 4
    GENERATE_SPEECH = 5
    ASSEMBLE_AUDIO = 6
    COMPOSE_VIDEO = 7
    COMPLETED = 8

    @property
    def title(self) -> str:
        return _STEP_TITLES[self]

    @property
    def weight(self) -> float:
        """Relative share of a job's progress, used for interpolation only."""
        return _STEP_WEIGHTS[self]


_STEP_TITLES = {
    Step.IDLE: "Idle",
    Step.EXTRACT_AUDIO: "Extracting Audio",
    Step.TRANSCRIBE: "Transcribing",
    Step.TRANSLATE: "Translating",
    Step.GENERATE_SUBTITLES: "Generating Subtitles",
    Step.GENERATE_SPEECH: "Generating Speech",
    Step.ASSEMBLE_AUDIO: "Assembling Audio",
    Step.COMPOSE_VIDEO: "Composing Video",
    Step.COMPLETED: "Completed",
}

_STEP_WEIGHTS = {
    Step.IDLE: 0.0,
    Step.EXTRACT_AUDIO: 0.10,
    Step.TRANSCRIBE: 0.25,
    Step.TRANSLATE: 0.15,
    Step.GENERATE_SUBTITLES: 0.10,
    Step.GENERATE_SPEECH: 0.20,
    Step.ASSEMBLE_AUDIO: 0.10,
    Step.COMPOSE_VIDEO: 0.10,
    Step.COMPLETED: 1.0,
}


class PipelineMode(Enum):
    """Processing mode determining which steps run."""
    SUBTITLES_ONLY = "subtitles_only"
    SUBTITLES_TRANSLATION = "subtitles_translation"
    DUBBED_VIDEO_ONLY = "dubbed_video_only"
    FULL_PIPELINE = "full_pipeline"

    @property
    def steps(self) -> List[Step]:
        return list(_MODE_STEPS[self])

    @property
    def requires_translation(self) -> bool:
        return self is not PipelineMode.SUBTITLES_ONLY

    @property
    def generates_subtitles(self) -> bool:
        return Step.GENERATE_SUBTITLES in _MODE_STEPS[self]

    @property
    def generates_video(self) -> bool:
        return Step.COMPOSE_VIDEO in _MODE_STEPS[self]


_MODE_STEPS = {
    PipelineMode.SUBTITLES_ONLY: (
        Step.EXTRACT_AUDIO,
        Step.TRANSCRIBE,
        Step.GENERATE_SUBTITLES,
    ),
    PipelineMode.SUBTITLES_TRANSLATION: (
        Step.EXTRACT_AUDIO,
        Step.TRANSCRIBE,
        Step.TRANSLATE,
        Step.GENERATE_SUBTITLES,
    ),
    PipelineMode.DUBBED_VIDEO_ONLY: (
        Step.EXTRACT_AUDIO,
        Step.TRANSCRIBE,
        Step.TRANSLATE,
        Step.GENERATE_SPEECH,
        Step.ASSEMBLE_AUDIO,
        Step.COMPOSE_VIDEO,
    ),
    PipelineMode.FULL_PIPELINE: (
        Step.EXTRACT_AUDIO,
        Step.TRANSCRIBE,
        Step.TRANSLATE,
        Step.GENERATE_SUBTITLES,
        Step.GENERATE_SPEECH,
        Step.ASSEMBLE_AUDIO,
        Step.COMPOSE_VIDEO,
    ),
}


class SubtitleFormat(Enum):
    """Subtitle file formats."""
    SRT = "srt"
    VTT = "vtt"
    ASS = "ass"

    @property
    def file_extension(self) -> str:
        return self.value


@dataclass(frozen=True)
class JobConfig:
    """Configuration for one job run. Immutable while the job executes."""
    mode: PipelineMode = PipelineMode.FULL_PIPELINE
    source_language: str = "en"
    target_language: str = "ru"
    whisper_model: str = "base"
    tts_voice: str = "ru-RU-DmitryNeural"
    enable_speed_sync: bool = True
    use_fixed_segment_duration: bool = False
    fixed_segment_duration: float = 7.0
    cleanup_temp_files: bool = True
    subtitle_format: SubtitleFormat = SubtitleFormat.SRT
    output_directory: Optional[str] = None

    def validate(self) -> None:
        """Raise ConfigurationError if the configuration cannot run."""
        if self.mode.requires_translation and self.source_language == self.target_language:
            raise ConfigurationError("Source and target languages must be different")
        if self.use_fixed_segment_duration and self.fixed_segment_duration <= 0:
            raise ConfigurationError("Fixed segment duration must be positive")
        if self.whisper_model not in SUPPORTED_WHISPER_MODELS:
            raise ConfigurationError(f"Unsupported Whisper model: {self.whisper_model}")


@dataclass
class OutputFiles:
    """Artifacts a job keeps after it finishes."""
    original_subtitles: Optional[str] = None
    translated_subtitles: Optional[str] = None
    dubbed_video: Optional[str] = None

    @property
    def has_any_output(self) -> bool:
        return self.count > 0

    @property
    def count(self) -> int:
        return sum(
            1 for path in (self.original_subtitles, self.translated_subtitles, self.dubbed_video)
            if path is not None
        )

    def paths(self) -> List[str]:
        return [
            path for path in (self.original_subtitles, self.translated_subtitles, self.dubbed_video)
            if path is not None
        ]


@dataclass
class Job:
    """One end-to-end media-conversion request."""
    source_path: str
    config: JobConfig = field(default_factory=JobConfig)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: JobStatus = JobStatus.PENDING
    current_step: Step = Step.IDLE
    progress: float = 0.0
    created_at: datetime = field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    error: Optional[str] = None
    output_files: Optional[OutputFiles] = None
    file_size: Optional[int] = None

    @classmethod
    def from_path(cls, source_path: str, config: Optional[JobConfig] = None) -> "Job":
        return cls(source_path=str(source_path), config=config or JobConfig())

    @property
    def file_name(self) -> str:
        return Path(self.source_path).name

    @property
    def stem(self) -> str:
        return Path(self.source_path).stem

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def can_cancel(self) -> bool:
        return self.status in (JobStatus.PENDING, JobStatus.RUNNING)

    @property
    def can_retry(self) -> bool:
        return self.status is JobStatus.FAILED

    @property
    def elapsed_seconds(self) -> Optional[float]:
        if self.started_at is None:
            return None
        end = self.finished_at or datetime.now()
        return (end - self.started_at).total_seconds()

    def copy(self) -> "Job":
        """Snapshot for readers; output files are copied too."""
        output_files = replace(self.output_files) if self.output_files else None
        return replace(self, output_files=output_files)

    def mark_finished(self, status: JobStatus, error: Optional[str] = None) -> None:
        """Move to a terminal status, keeping the timestamp invariant."""
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal status")
        self.status = status
        self.error = error
        self.finished_at = datetime.now()
        if status is JobStatus.SUCCEEDED:
            self.current_step = Step.COMPLETED
            self.progress = 1.0

    def retry(self) -> "Job":
        """Fresh pending job sharing this job's source and configuration."""
        return Job(source_path=self.source_path, config=self.config, file_size=self.file_size)


class EventType(Enum):
    """Kinds of events on the progress stream."""
    STEP_CHANGED = "step_changed"
    PROGRESS = "progress"
    FINISHED = "finished"
    QUEUE_CHANGED = "queue_changed"


@dataclass(frozen=True)
class JobEvent:
    """A discrete status event keyed by job identity."""
    type: EventType
    job_id: Optional[str] = None
    step: Optional[Step] = None
    progress: Optional[float] = None
    status: Optional[JobStatus] = None
    message: Optional[str] = None
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        if self.progress is not None:
            object.__setattr__(self, 'progress', max(0.0, min(1.0, self.progress)))


def status_counts(jobs: List[Job]) -> Dict[JobStatus, int]:
    """Count jobs per status, including statuses with no jobs."""
    counts = {status: 0 for status in JobStatus}
    for job in jobs:
        counts[job.status] += 1
    return counts
