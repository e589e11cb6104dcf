"""Pytest configuration and shared fixtures for the SubDub tests."""

import os
import tempfile
import threading
from typing import Dict, List, Optional

import pytest

from subdub.models.core import TranscriptionResult, Word
from subdub.models.job import EventType, Job, JobConfig, JobEvent, JobStatus, PipelineMode
from subdub.services.base import (
    BaseASRService,
    BaseMediaService,
    BaseTranslationService,
    BaseTTSService,
)
from subdub.services.error_handler import ErrorHandler
from subdub.services.pipeline_executor import PipelineExecutor
from subdub.services.subtitle_exporter import SubtitleExporter


def _touch(path: str, content: bytes = b'data') -> str:
    os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
    with open(path, 'wb') as f:
        f.write(content)
    return path


class FakeMediaService(BaseMediaService):
    """Writes placeholder files and records every call.

    ``durations`` maps paths to probed durations; unknown paths report
    ``default_duration``. A tempo transform divides the input duration by
    the product of its factors. ``errors`` maps a call name to the exception
    that call raises.
    """

    def __init__(self, default_duration: Optional[float] = 1.0):
        self.default_duration = default_duration
        self.durations: Dict[str, float] = {}
        self.calls: List[tuple] = []
        self.fail_on: set = set()
        self.errors: Dict[str, Exception] = {}

    def _check(self, name: str) -> None:
        if name in self.errors:
            raise self.errors[name]
        if name in self.fail_on:
            raise RuntimeError(f"{name} failed")

    def extract_audio(self, video_path, output_path):
        self.calls.append(('extract_audio', video_path, output_path))
        self._check('extract_audio')
        return _touch(output_path)

    def probe_duration(self, path):
        self.calls.append(('probe_duration', path))
        self._check('probe_duration')
        return self.durations.get(path, self.default_duration)

    def transform_tempo(self, input_path, factors, output_path):
        self.calls.append(('transform_tempo', input_path, list(factors), output_path))
        self._check('transform_tempo')
        product = 1.0
        for factor in factors:
            product *= factor
        measured = self.durations.get(input_path, self.default_duration)
        self.durations[output_path] = measured / product
        return _touch(output_path)

    def generate_silence(self, duration, output_path):
        self.calls.append(('generate_silence', duration, output_path))
        self._check('generate_silence')
        return _touch(output_path)

    def concatenate(self, input_paths, output_path):
        self.calls.append(('concatenate', list(input_paths), output_path))
        self._check('concatenate')
        return _touch(output_path)

    def mux(self, video_path, audio_path, output_path, subtitle_path=None):
        self.calls.append(('mux', video_path, audio_path, output_path, subtitle_path))
        self._check('mux')
        return _touch(output_path)

    def calls_named(self, name: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == name]


class FakeASRService(BaseASRService):
    def __init__(self, words: Optional[List[Word]] = None, error: Optional[Exception] = None):
        self.words = words if words is not None else sample_words()
        self.error = error
        self.initialize_calls: List[str] = []
        self.transcribe_calls: List[tuple] = []

    def initialize(self, model_size="base"):
        self.initialize_calls.append(model_size)

    def transcribe(self, audio_path, language=None, model_size=None):
        self.transcribe_calls.append((audio_path, language, model_size))
        if self.error:
            raise self.error
        return TranscriptionResult(
            text=" ".join(word.text for word in self.words),
            words=list(self.words),
            language=language,
        )


class FakeTranslationService(BaseTranslationService):
    def __init__(self, fail_at: Optional[int] = None):
        self.calls: List[tuple] = []
        self.fail_at = fail_at
        self.on_call = None

    def translate(self, text, source_language, target_language):
        self.calls.append((text, source_language, target_language))
        if self.on_call:
            self.on_call()
        if self.fail_at is not None and len(self.calls) == self.fail_at:
            raise RuntimeError("Gemini API unavailable")
        return f"[{target_language}] {text}"


class FakeTTSService(BaseTTSService):
    def __init__(self, fail: bool = False):
        self.calls: List[tuple] = []
        self.fail = fail

    def synthesize(self, text, voice, output_path):
        self.calls.append((text, voice, output_path))
        if self.fail:
            raise RuntimeError("TTS generation failed")
        return _touch(output_path)


def sample_words() -> List[Word]:
    """Two sentences separated by a long pause."""
    return [
        Word("Hello", 0.5, 0.9),
        Word("world.", 1.0, 1.5),
        Word("How", 3.0, 3.3),
        Word("are", 3.4, 3.6),
        Word("you?", 3.7, 4.0),
    ]


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def sample_video_file(temp_dir):
    """Create a sample video file for testing."""
    return _touch(os.path.join(temp_dir, "sample.mp4"), b'fake video content' * 1000)


@pytest.fixture
def fake_media():
    return FakeMediaService()


@pytest.fixture
def fake_asr():
    return FakeASRService()


@pytest.fixture
def fake_translator():
    return FakeTranslationService()


@pytest.fixture
def fake_tts():
    return FakeTTSService()


@pytest.fixture
def executor(fake_media, fake_asr, fake_translator, fake_tts):
    return PipelineExecutor(
        media_service=fake_media,
        asr_service=fake_asr,
        translation_service=fake_translator,
        tts_service=fake_tts,
        subtitle_writer=SubtitleExporter(ErrorHandler()),
    )


@pytest.fixture
def make_job(sample_video_file):
    def factory(mode: PipelineMode = PipelineMode.FULL_PIPELINE, **overrides) -> Job:
        return Job.from_path(sample_video_file, JobConfig(mode=mode, **overrides))
    return factory


class ControlledExecutor:
    """Stand-in executor whose jobs run until the test releases them.

    Tracks how many jobs execute at once; ``release(job_id)`` lets one job
    finish with ``outcome``.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._gates: Dict[str, threading.Event] = {}
        self._started: Dict[str, threading.Event] = {}
        self.outcomes: Dict[str, JobStatus] = {}
        self.running = 0
        self.max_running = 0
        self.started_order: List[str] = []
        self.ignore_cancel = False

    def _gate(self, store: Dict[str, threading.Event], job_id: str) -> threading.Event:
        with self._lock:
            return store.setdefault(job_id, threading.Event())

    def run(self, job: Job, token, publish) -> Job:
        with self._lock:
            self.running += 1
            self.max_running = max(self.max_running, self.running)
            self.started_order.append(job.id)
        self._gate(self._started, job.id).set()

        result = job.copy()
        try:
            publish(JobEvent(type=EventType.STEP_CHANGED, job_id=job.id,
                             step=job.config.mode.steps[0], progress=0.0,
                             status=JobStatus.RUNNING))
            gate = self._gate(self._gates, job.id)
            while not gate.wait(0.01):
                if token.cancelled and not self.ignore_cancel:
                    result.mark_finished(JobStatus.CANCELLED)
                    return result
            status = self.outcomes.get(job.id, JobStatus.SUCCEEDED)
            result.mark_finished(status, "boom" if status is JobStatus.FAILED else None)
            return result
        finally:
            with self._lock:
                self.running -= 1

    def release(self, job_id: str, outcome: JobStatus = JobStatus.SUCCEEDED) -> None:
        self.outcomes[job_id] = outcome
        self._gate(self._gates, job_id).set()

    def release_all(self) -> None:
        with self._lock:
            ids = list(self._started)
        for job_id in ids:
            self.release(job_id, self.outcomes.get(job_id, JobStatus.SUCCEEDED))

    def wait_started(self, job_id: str, timeout: float = 5.0) -> bool:
        return self._gate(self._started, job_id).wait(timeout)


@pytest.fixture
def controlled_executor():
    return ControlledExecutor()
