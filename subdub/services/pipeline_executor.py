"""Pipeline executor: runs the ordered steps of one job.

Each step consumes the output of the step before it and produces the next
stage object. The accepted input types are declared per step, so a mode can
never hand a step the wrong artifacts; intermediate artifacts live only for
the duration of one ``run``.
"""

import logging
import os
import shutil
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Set

from ..exceptions import (
    CompositionFailed,
    ExtractionFailed,
    JobCancelled,
    PipelineError,
    SegmentationEmpty,
    SubtitleGenerationFailed,
    SynthesisFailed,
    TranscriptionFailed,
    TranslationFailed,
)
from ..models.core import BilingualSegment, Segment, SynthesizedClip
from ..models.job import EventType, Job, JobEvent, JobStatus, OutputFiles, PipelineMode, Step
from .audio_assembly import AudioAssembler
from .base import (
    COLLABORATOR_ERRORS,
    BaseASRService,
    BaseMediaService,
    BaseSubtitleWriter,
    BaseTranslationService,
    BaseTTSService,
)
from .events import CancellationToken
from .segmentation import SegmentationService
from .tempo import TempoCorrector


logger = logging.getLogger(__name__)

WORK_DIR_NAME = ".subdub"

EventSink = Callable[[JobEvent], None]

# Guards the shared work root between job creation and empty-root removal
_WORK_DIR_LOCK = threading.Lock()


# Stage outputs, one per step

@dataclass(frozen=True)
class ExtractedAudio:
    audio_path: str


@dataclass(frozen=True)
class Transcript:
    segments: List[Segment]


@dataclass(frozen=True)
class Translation:
    segments: List[BilingualSegment]


@dataclass(frozen=True)
class Subtitles:
    segments: List[BilingualSegment]
    original_path: str
    translated_path: Optional[str] = None


@dataclass(frozen=True)
class SpeechClips:
    clips: List[SynthesizedClip]


@dataclass(frozen=True)
class DubbedAudio:
    audio_path: str


@dataclass(frozen=True)
class ComposedVideo:
    video_path: str


@dataclass(frozen=True)
class JobPaths:
    """Every path one job run reads or writes."""
    work_dir: str
    audio: str
    tts_dir: str
    dubbed_audio: str
    original_subtitles: str
    translated_subtitles: str
    dubbed_video: str

    @classmethod
    def for_job(cls, job: Job) -> "JobPaths":
        source = Path(job.source_path)
        config = job.config
        output_dir = Path(config.output_directory) if config.output_directory else source.parent
        work_dir = source.parent / WORK_DIR_NAME / job.id
        extension = config.subtitle_format.file_extension
        return cls(
            work_dir=str(work_dir),
            audio=str(work_dir / "audio.mp3"),
            tts_dir=str(work_dir / "tts"),
            dubbed_audio=str(work_dir / "dubbed_audio.mp3"),
            original_subtitles=str(output_dir / f"{source.stem}_{config.source_language}.{extension}"),
            translated_subtitles=str(output_dir / f"{source.stem}_{config.target_language}.{extension}"),
            dubbed_video=str(output_dir / f"{source.stem}_{config.target_language}.mp4"),
        )


@dataclass
class _RunContext:
    job: Job
    paths: JobPaths
    token: CancellationToken
    publish: EventSink
    step: Step = Step.IDLE
    step_index: int = 0
    step_count: int = 1
    outputs: OutputFiles = field(default_factory=OutputFiles)

    def report(self, fraction: float) -> None:
        """Publish progress within the current step."""
        base = self.step_index / self.step_count
        ceiling = (self.step_index + 1) / self.step_count
        overall = min(base + max(0.0, min(1.0, fraction)) * self.step.weight, ceiling)
        self.job.progress = overall
        self.publish(JobEvent(
            type=EventType.PROGRESS,
            job_id=self.job.id,
            step=self.step,
            progress=overall,
            status=JobStatus.RUNNING,
            message=f"{self.step.title}... {int(fraction * 100)}%",
        ))


_STEP_HANDLERS = {
    Step.EXTRACT_AUDIO: ('_extract_audio', (type(None),)),
    Step.TRANSCRIBE: ('_transcribe', (ExtractedAudio,)),
    Step.TRANSLATE: ('_translate', (Transcript,)),
    Step.GENERATE_SUBTITLES: ('_generate_subtitles', (Transcript, Translation)),
    Step.GENERATE_SPEECH: ('_generate_speech', (Translation, Subtitles)),
    Step.ASSEMBLE_AUDIO: ('_assemble_audio', (SpeechClips,)),
    Step.COMPOSE_VIDEO: ('_compose_video', (DubbedAudio,)),
}


def _discard_event(event: JobEvent) -> None:
    pass


class PipelineExecutor:
    """Runs one job's steps in order, reporting progress as events.

    One executor may serve several jobs concurrently; it holds no per-job
    state outside of ``run``.
    """

    def __init__(
        self,
        media_service: BaseMediaService,
        asr_service: BaseASRService,
        translation_service: BaseTranslationService,
        tts_service: BaseTTSService,
        subtitle_writer: BaseSubtitleWriter,
        segmentation_service: Optional[SegmentationService] = None
    ):
        self.media_service = media_service
        self.asr_service = asr_service
        self.translation_service = translation_service
        self.tts_service = tts_service
        self.subtitle_writer = subtitle_writer
        self.segmentation_service = segmentation_service or SegmentationService()
        self.tempo_corrector = TempoCorrector(media_service)
        self.assembler = AudioAssembler(media_service)

        self._asr_lock = threading.Lock()
        self._asr_models: Set[str] = set()

    def run(
        self,
        job: Job,
        token: Optional[CancellationToken] = None,
        publish: Optional[EventSink] = None
    ) -> Job:
        """Execute every step of ``job.config.mode`` and return the finished job.

        The input job is not modified. The returned copy is always terminal:
        succeeded, failed (with ``error``) or cancelled.
        """
        token = token or CancellationToken(job.id)
        publish = publish or _discard_event

        result = job.copy()
        result.status = JobStatus.RUNNING
        result.started_at = datetime.now()
        result.finished_at = None
        result.error = None

        steps = job.config.mode.steps
        paths = JobPaths.for_job(job)
        context = _RunContext(job=result, paths=paths, token=token, publish=publish, step_count=len(steps))
        result.output_files = context.outputs

        logger.info(f"Job {job.id} started: {job.file_name} ({job.config.mode.value}, {len(steps)} steps)")

        try:
            with _WORK_DIR_LOCK:
                os.makedirs(paths.work_dir, exist_ok=True)
            stage = None
            for index, step in enumerate(steps):
                token.raise_if_cancelled()

                context.step = step
                context.step_index = index
                result.current_step = step
                result.progress = index / len(steps)
                publish(JobEvent(
                    type=EventType.STEP_CHANGED,
                    job_id=job.id,
                    step=step,
                    progress=result.progress,
                    status=JobStatus.RUNNING,
                    message=step.title,
                ))

                stage = self._run_step(step, stage, context)

            result.mark_finished(JobStatus.SUCCEEDED)
            logger.info(f"Job {job.id} succeeded: {result.output_files.count} output file(s)")

        except JobCancelled:
            result.mark_finished(JobStatus.CANCELLED)
            logger.info(f"Job {job.id} cancelled during {result.current_step.title}")

        except PipelineError as e:
            result.mark_finished(JobStatus.FAILED, str(e))
            logger.error(f"Job {job.id} failed at {result.current_step.title}: {e}")

        except Exception as e:  # noqa: BLE001
            result.mark_finished(JobStatus.FAILED, f"Unexpected error: {e}")
            logger.exception(f"Job {job.id} failed unexpectedly at {result.current_step.title}")

        finally:
            if job.config.cleanup_temp_files:
                self._cleanup(paths.work_dir)

        publish(JobEvent(
            type=EventType.FINISHED,
            job_id=job.id,
            step=result.current_step,
            progress=result.progress,
            status=result.status,
            message=f"Job {result.status.value}",
            error=result.error,
        ))
        return result

    def _run_step(self, step: Step, stage: object, context: _RunContext) -> object:
        method_name, accepted = _STEP_HANDLERS[step]
        if not isinstance(stage, accepted):
            raise PipelineError(f"{step.title} cannot consume {type(stage).__name__}")
        return getattr(self, method_name)(stage, context)

    def _extract_audio(self, stage: None, context: _RunContext) -> ExtractedAudio:
        try:
            self.media_service.extract_audio(context.job.source_path, context.paths.audio)
        except COLLABORATOR_ERRORS as e:
            raise ExtractionFailed(details=str(e)) from e
        return ExtractedAudio(context.paths.audio)

    def _transcribe(self, stage: ExtractedAudio, context: _RunContext) -> Transcript:
        config = context.job.config
        self._ensure_recognizer(config.whisper_model)
        context.token.raise_if_cancelled()

        try:
            transcription = self.asr_service.transcribe(
                stage.audio_path, config.source_language, config.whisper_model
            )
        except COLLABORATOR_ERRORS as e:
            raise TranscriptionFailed(details=str(e)) from e

        if not transcription.words:
            raise TranscriptionFailed("No speech recognized")

        segments = self.segmentation_service.segment(
            transcription.words,
            use_fixed_duration=config.use_fixed_segment_duration,
            fixed_duration=config.fixed_segment_duration,
        )
        if not segments:
            raise SegmentationEmpty(details=f"{transcription.word_count} words in, 0 segments out")

        logger.info(f"Job {context.job.id}: {transcription.word_count} words -> {len(segments)} segments")
        return Transcript(segments)

    def _ensure_recognizer(self, model: str) -> None:
        with self._asr_lock:
            if model in self._asr_models:
                return
            try:
                self.asr_service.initialize(model)
            except COLLABORATOR_ERRORS as e:
                raise TranscriptionFailed("Failed to initialize speech recognizer", str(e)) from e
            self._asr_models.add(model)

    def _translate(self, stage: Transcript, context: _RunContext) -> Translation:
        config = context.job.config
        total = len(stage.segments)
        translated: List[BilingualSegment] = []

        for index, segment in enumerate(stage.segments):
            context.token.raise_if_cancelled()
            try:
                text = self.translation_service.translate(
                    segment.text, config.source_language, config.target_language
                )
            except COLLABORATOR_ERRORS as e:
                raise TranslationFailed(f"Translation failed for segment {index + 1}", str(e)) from e

            translated.append(BilingualSegment(
                original=segment.text,
                translated=text,
                start_time=segment.start_time,
                end_time=segment.end_time,
            ))
            context.report((index + 1) / total)

        return Translation(translated)

    def _generate_subtitles(self, stage: object, context: _RunContext) -> Subtitles:
        config = context.job.config
        paths = context.paths

        if isinstance(stage, Transcript):
            # Subtitles-only: the writer always takes bilingual segments
            segments = [BilingualSegment.untranslated(segment) for segment in stage.segments]
            translated_path = None
        else:
            segments = stage.segments
            translated_path = paths.translated_subtitles

        try:
            os.makedirs(os.path.dirname(paths.original_subtitles), exist_ok=True)
            self.subtitle_writer.write(
                config.subtitle_format, segments, paths.original_subtitles, translated_path
            )
        except COLLABORATOR_ERRORS as e:
            raise SubtitleGenerationFailed(details=str(e)) from e

        context.outputs.original_subtitles = paths.original_subtitles
        if translated_path:
            context.outputs.translated_subtitles = translated_path

        return Subtitles(segments, paths.original_subtitles, translated_path)

    def _generate_speech(self, stage: object, context: _RunContext) -> SpeechClips:
        config = context.job.config
        tts_dir = context.paths.tts_dir
        os.makedirs(tts_dir, exist_ok=True)

        total = len(stage.segments)
        clips: List[SynthesizedClip] = []

        for index, segment in enumerate(stage.segments):
            context.token.raise_if_cancelled()

            clip = SynthesizedClip(
                index=index + 1,
                text=segment.translated,
                start_time=segment.start_time,
                end_time=segment.end_time,
            )
            temp_path = os.path.join(tts_dir, f"temp_{clip.expected_filename}")
            final_path = os.path.join(tts_dir, clip.expected_filename)

            try:
                self.tts_service.synthesize(clip.text, config.tts_voice, temp_path)
            except COLLABORATOR_ERRORS as e:
                raise SynthesisFailed(f"Failed to generate segment {clip.index}", str(e)) from e

            if config.enable_speed_sync:
                try:
                    self.tempo_corrector.correct(temp_path, final_path, clip.duration, context.token)
                finally:
                    _remove_quietly(temp_path)
            else:
                try:
                    os.replace(temp_path, final_path)
                except OSError as e:
                    raise SynthesisFailed(f"Failed to save segment {clip.index}", str(e)) from e

            clip.audio_path = final_path
            clips.append(clip)
            context.report((index + 1) / total)

        return SpeechClips(clips)

    def _assemble_audio(self, stage: SpeechClips, context: _RunContext) -> DubbedAudio:
        self.assembler.assemble(
            stage.clips,
            context.paths.dubbed_audio,
            context.paths.work_dir,
            token=context.token,
            progress_callback=context.report,
        )
        return DubbedAudio(context.paths.dubbed_audio)

    def _compose_video(self, stage: DubbedAudio, context: _RunContext) -> ComposedVideo:
        job = context.job
        paths = context.paths
        subtitle_path = paths.translated_subtitles if job.config.mode is PipelineMode.FULL_PIPELINE else None

        try:
            os.makedirs(os.path.dirname(paths.dubbed_video), exist_ok=True)
            self.media_service.mux(job.source_path, stage.audio_path, paths.dubbed_video, subtitle_path)
        except COLLABORATOR_ERRORS as e:
            raise CompositionFailed(details=str(e)) from e

        context.outputs.dubbed_video = paths.dubbed_video
        return ComposedVideo(paths.dubbed_video)

    @staticmethod
    def _cleanup(work_dir: str) -> None:
        """Remove the job's working directory, and its parent if left empty."""
        try:
            if os.path.exists(work_dir):
                shutil.rmtree(work_dir)
            parent = os.path.dirname(work_dir)
            with _WORK_DIR_LOCK:
                if os.path.isdir(parent) and not os.listdir(parent):
                    os.rmdir(parent)
        except OSError as e:
            logger.warning(f"Failed to clean up {work_dir}: {e}")


def _remove_quietly(path: str) -> None:
    try:
        if os.path.exists(path):
            os.remove(path)
    except OSError as e:
        logger.warning(f"Failed to remove temp file {path}: {e}")
