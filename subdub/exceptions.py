"""Job-scoped error taxonomy.

Every pipeline failure aborts only the job it occurred in. ``JobCancelled`` is
deliberately not a ``PipelineError``: a cancelled job carries no error message.
"""

from typing import Optional


class ConfigurationError(ValueError):
    """A job configuration that cannot run."""


class PipelineError(RuntimeError):
    """Base class for step failures inside one job."""

    default_message = "Pipeline step failed"
    step_name: Optional[str] = None

    def __init__(self, message: Optional[str] = None, details: Optional[str] = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message if not details else f"{self.message}: {details}")


class ExtractionFailed(PipelineError):
    default_message = "Audio extraction failed"
    step_name = "extract_audio"


class TranscriptionFailed(PipelineError):
    default_message = "Transcription failed"
    step_name = "transcribe"


class SegmentationEmpty(PipelineError):
    default_message = "Segmentation produced no segments"
    step_name = "transcribe"


class TranslationFailed(PipelineError):
    default_message = "Translation failed"
    step_name = "translate"


class SubtitleGenerationFailed(PipelineError):
    default_message = "Subtitle generation failed"
    step_name = "generate_subtitles"


class SynthesisFailed(PipelineError):
    default_message = "Speech synthesis failed"
    step_name = "generate_speech"


class AssemblyFailed(PipelineError):
    default_message = "Audio assembly failed"
    step_name = "assemble_audio"


class CompositionFailed(PipelineError):
    default_message = "Video composition failed"
    step_name = "compose_video"


class JobCancelled(Exception):
    """Raised at a cancellation checkpoint once a job's token is cancelled."""

    def __init__(self, job_id: Optional[str] = None):
        self.job_id = job_id
        super().__init__()
