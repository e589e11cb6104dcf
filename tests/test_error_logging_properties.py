"""Property-based tests for error logging completeness.

Property: Error logging completeness
For any job failure, the error handler keeps a record typed by the failed
step, with context and a recovery suggestion for troubleshooting.
"""

import json
import logging
import os

import pytest
from hypothesis import given, strategies as st, settings

from subdub.exceptions import AssemblyFailed, PipelineError, TranslationFailed
from subdub.models.job import Job, JobStatus, Step
from subdub.services.error_handler import STEP_ERROR_TYPES, ErrorHandler, ErrorSeverity


PIPELINE_STEPS = [step for step in Step if step not in (Step.IDLE, Step.COMPLETED)]


def failed_job(step, error="boom"):
    job = Job.from_path("/videos/talk.mp4")
    job.current_step = step
    job.mark_finished(JobStatus.FAILED, error)
    return job


class TestErrorLoggingProperties:
    """Property-based tests for error logging completeness."""

    def setup_method(self):
        self.error_handler = ErrorHandler()

    @given(
        error_message=st.text(min_size=1, max_size=200),
        severity=st.sampled_from(list(ErrorSeverity)),
    )
    @settings(max_examples=100, deadline=None)
    def test_error_logging_creates_record_property(self, error_message, severity):
        """Property: Every logged error creates one complete record."""
        initial_count = len(self.error_handler.error_log)

        record = self.error_handler.log_error(RuntimeError(error_message), severity=severity)

        assert len(self.error_handler.error_log) == initial_count + 1
        assert record.error_type == 'RuntimeError'
        assert record.message == error_message
        assert record.severity is severity
        assert record.recovery_suggestion

    @given(step=st.sampled_from(PIPELINE_STEPS), message=st.text(min_size=1, max_size=100))
    @settings(max_examples=100, deadline=None)
    def test_job_failure_typed_by_step_property(self, step, message):
        """Property: A failed job is recorded under its step's error type with a suggestion."""
        record = self.error_handler.log_job_failure(failed_job(step, message))

        assert record.error_type == STEP_ERROR_TYPES[step]
        assert record.message == message
        assert record.context['step'] == step.title
        assert record.context['file'] == "talk.mp4"
        assert record.recovery_suggestion

    @given(error_types=st.lists(
        st.sampled_from(['TranslationFailed', 'AssemblyFailed', 'RuntimeError']),
        min_size=1, max_size=20
    ))
    @settings(max_examples=50, deadline=None)
    def test_summary_counts_property(self, error_types):
        """Property: The summary counts every record by type."""
        handler = ErrorHandler()
        errors = {
            'TranslationFailed': TranslationFailed,
            'AssemblyFailed': AssemblyFailed,
            'RuntimeError': RuntimeError,
        }
        for name in error_types:
            handler.log_error(errors[name]("failure"))

        summary = handler.get_error_summary()

        assert summary['total_errors'] == len(error_types)
        assert summary['by_type'] == {name: error_types.count(name) for name in set(error_types)}
        assert len(summary['recent_errors']) == min(10, len(error_types))


class TestErrorHandler:

    def test_every_pipeline_error_has_a_suggestion(self):
        suggestions = ErrorHandler.get_common_error_suggestions()

        for subclass in PipelineError.__subclasses__():
            assert subclass.__name__ in suggestions

    def test_unknown_step_falls_back_to_pipeline_error(self):
        record = ErrorHandler().log_job_failure(failed_job(Step.IDLE))

        assert record.error_type == 'PipelineError'

    def test_explicit_suggestion_wins(self):
        record = ErrorHandler().log_error(RuntimeError("x"), recovery_suggestion="Restart")

        assert record.recovery_suggestion == "Restart"

    def test_recovery_suggestions_are_unique(self):
        handler = ErrorHandler()
        handler.log_error(TranslationFailed())
        handler.log_error(TranslationFailed())
        handler.log_error(AssemblyFailed())

        assert len(handler.get_recovery_suggestions()) == 2
        assert len(handler.get_recovery_suggestions('AssemblyFailed')) == 1

    def test_clear_error_log(self):
        handler = ErrorHandler()
        handler.log_error(RuntimeError("x"))

        handler.clear_error_log()

        assert handler.get_error_summary()['total_errors'] == 0

    def test_export_error_log(self, temp_dir):
        handler = ErrorHandler()
        handler.log_job_failure(failed_job(Step.TRANSLATE, "Gemini API unavailable"))
        output = os.path.join(temp_dir, "logs", "errors.json")

        handler.export_error_log(output)

        with open(output, encoding='utf-8') as f:
            data = json.load(f)
        assert data['total_errors'] == 1
        assert data['errors'][0]['type'] == 'TranslationFailed'
        assert data['errors'][0]['context']['step'] == "Translating"

    def test_log_file_receives_records(self, temp_dir):
        log_file = os.path.join(temp_dir, "subdub.log")
        handler = ErrorHandler(log_file=log_file)
        try:
            handler.log_error(RuntimeError("disk on fire"))
        finally:
            handler.close()

        with open(log_file, encoding='utf-8') as f:
            assert "disk on fire" in f.read()
        assert not any(isinstance(h, logging.FileHandler) for h in handler.logger.handlers)

    def test_same_log_file_gets_one_handler(self, temp_dir):
        log_file = os.path.join(temp_dir, "subdub.log")
        first = ErrorHandler(log_file=log_file)
        second = ErrorHandler(log_file=log_file)
        try:
            file_handlers = [h for h in first.logger.handlers if isinstance(h, logging.FileHandler)]
            assert len(file_handlers) == 1

            second.log_error(RuntimeError("written once"))
        finally:
            second.close()
            first.close()

        with open(log_file, encoding='utf-8') as f:
            assert f.read().count("written once") == 1

    def test_package_logger_level_untouched(self, temp_dir):
        package_logger = logging.getLogger('subdub')
        level = package_logger.level

        handler = ErrorHandler(log_file=os.path.join(temp_dir, "subdub.log"), log_level=logging.WARNING)
        handler.close()
        ErrorHandler(log_level=logging.CRITICAL)

        assert package_logger.level == level

    def test_records_propagate_to_logging(self, caplog):
        with caplog.at_level(logging.ERROR, logger='subdub'):
            ErrorHandler().log_job_failure(failed_job(Step.COMPOSE_VIDEO, "mux failed"))

        assert "CompositionFailed: mux failed" in caplog.text


@pytest.mark.parametrize("severity,level", [
    (ErrorSeverity.WARNING, logging.WARNING),
    (ErrorSeverity.CRITICAL, logging.CRITICAL),
])
def test_severity_maps_to_log_level(caplog, severity, level):
    with caplog.at_level(logging.DEBUG, logger='subdub'):
        ErrorHandler().log_error(ValueError("bad value"), severity=severity)

    assert any(record.levelno == level for record in caplog.records)
