"""Centralized error recording for job failures.

Keeps an in-memory log of ``ErrorRecord`` entries with a recovery suggestion
per error type, and mirrors every record to the ``subdub`` logger.
"""

import json
import logging
import os
import sys
import threading
import traceback
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..models.job import Job, Step


class ErrorSeverity(Enum):
    """Error severity levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass
class ErrorRecord:
    """Record of an error occurrence."""
    timestamp: datetime
    severity: ErrorSeverity
    error_type: str
    message: str
    traceback: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)
    recovery_suggestion: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp.isoformat(),
            'severity': self.severity.value,
            'type': self.error_type,
            'message': self.message,
            'traceback': self.traceback,
            'context': self.context,
            'recovery_suggestion': self.recovery_suggestion
        }


# Error type recorded for a job that failed during a given step
STEP_ERROR_TYPES = {
    Step.EXTRACT_AUDIO: 'ExtractionFailed',
    Step.TRANSCRIBE: 'TranscriptionFailed',
    Step.TRANSLATE: 'TranslationFailed',
    Step.GENERATE_SUBTITLES: 'SubtitleGenerationFailed',
    Step.GENERATE_SPEECH: 'SynthesisFailed',
    Step.ASSEMBLE_AUDIO: 'AssemblyFailed',
    Step.COMPOSE_VIDEO: 'CompositionFailed',
}

_LOG_METHODS = {
    ErrorSeverity.CRITICAL: logging.CRITICAL,
    ErrorSeverity.ERROR: logging.ERROR,
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.INFO: logging.INFO,
    ErrorSeverity.DEBUG: logging.DEBUG,
}


class ErrorHandler:
    """Collects job failures with context and recovery suggestions."""

    def __init__(self, log_file: Optional[str] = None, log_level: int = logging.INFO):
        """Initialize the error handler.

        Args:
            log_file: Optional path to a log file, in addition to normal propagation
            log_level: Level of the log file handler (default: INFO)
        """
        self.error_log: List[ErrorRecord] = []
        self._lock = threading.Lock()
        self._file_handler: Optional[logging.FileHandler] = None
        self.logger = self._setup_logger(log_file, log_level)

    def _setup_logger(self, log_file: Optional[str], log_level: int) -> logging.Logger:
        # The package logger level is left to the application
        logger = logging.getLogger('subdub')
        if not log_file:
            return logger

        log_path = os.path.abspath(log_file)
        for handler in logger.handlers:
            if isinstance(handler, logging.FileHandler) and handler.baseFilename == log_path:
                return logger

        Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding='utf-8')
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        logger.addHandler(file_handler)
        self._file_handler = file_handler
        return logger

    def close(self) -> None:
        """Detach and close the log file handler this instance added, if any."""
        if self._file_handler is not None:
            self.logger.removeHandler(self._file_handler)
            self._file_handler.close()
            self._file_handler = None

    def log_error(
        self,
        error: Exception,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: Optional[Dict[str, Any]] = None,
        recovery_suggestion: Optional[str] = None
    ) -> ErrorRecord:
        """Log an exception with context and a recovery suggestion.

        When no suggestion is given, the common suggestion for the error's
        type is used.
        """
        error_type = type(error).__name__
        record = ErrorRecord(
            timestamp=datetime.now(),
            severity=severity,
            error_type=error_type,
            message=str(error),
            traceback=traceback.format_exc() if sys.exc_info()[0] is not None else None,
            context=context or {},
            recovery_suggestion=recovery_suggestion or self.suggestion_for(error_type)
        )
        self._append(record)
        return record

    def log_job_failure(self, job: Job) -> ErrorRecord:
        """Record a failed job, typed by the step it failed in."""
        error_type = STEP_ERROR_TYPES.get(job.current_step, 'PipelineError')
        record = ErrorRecord(
            timestamp=datetime.now(),
            severity=ErrorSeverity.ERROR,
            error_type=error_type,
            message=job.error or "Unknown error",
            context={
                'job_id': job.id,
                'file': job.file_name,
                'step': job.current_step.title,
                'mode': job.config.mode.value,
            },
            recovery_suggestion=self.suggestion_for(error_type)
        )
        self._append(record)
        return record

    def _append(self, record: ErrorRecord) -> None:
        with self._lock:
            self.error_log.append(record)

        log_message = f"{record.error_type}: {record.message}"
        if record.context:
            log_message += f" | Context: {record.context}"
        if record.recovery_suggestion:
            log_message += f" | Suggestion: {record.recovery_suggestion}"
        self.logger.log(_LOG_METHODS[record.severity], log_message)

        if record.traceback and record.severity in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL):
            self.logger.debug(f"Traceback:\n{record.traceback}")

    def log_info(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        log_message = message
        if context:
            log_message += f" | Context: {context}"
        self.logger.info(log_message)

    def get_error_summary(self) -> Dict[str, Any]:
        """Counts by severity and by type, plus the ten most recent errors."""
        with self._lock:
            records = list(self.error_log)

        by_severity: Dict[str, int] = {}
        by_type: Dict[str, int] = {}
        for record in records:
            by_severity[record.severity.value] = by_severity.get(record.severity.value, 0) + 1
            by_type[record.error_type] = by_type.get(record.error_type, 0) + 1

        recent_errors = [
            {
                'timestamp': record.timestamp.isoformat(),
                'severity': record.severity.value,
                'type': record.error_type,
                'message': record.message,
                'suggestion': record.recovery_suggestion
            }
            for record in records[-10:]
        ]

        return {
            'total_errors': len(records),
            'by_severity': by_severity,
            'by_type': by_type,
            'recent_errors': recent_errors
        }

    def get_recovery_suggestions(self, error_type: Optional[str] = None) -> List[str]:
        """Unique suggestions from the log, in first-seen order."""
        with self._lock:
            records = list(self.error_log)

        suggestions: List[str] = []
        for record in records:
            if error_type is not None and record.error_type != error_type:
                continue
            if record.recovery_suggestion and record.recovery_suggestion not in suggestions:
                suggestions.append(record.recovery_suggestion)
        return suggestions

    def clear_error_log(self) -> None:
        with self._lock:
            self.error_log.clear()
        self.logger.info("Error log cleared")

    def export_error_log(self, output_file: str) -> None:
        """Export the error log as JSON."""
        with self._lock:
            errors = [record.to_dict() for record in self.error_log]

        log_data = {
            'export_time': datetime.now().isoformat(),
            'total_errors': len(errors),
            'errors': errors
        }

        output_path = Path(output_file)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(log_data, f, indent=2)

        self.logger.info(f"Error log exported to {output_file}")

    def suggestion_for(self, error_type: str) -> Optional[str]:
        return self.get_common_error_suggestions().get(error_type)

    @staticmethod
    def get_common_error_suggestions() -> Dict[str, str]:
        """Common error types and their recovery suggestions."""
        return {
            'ExtractionFailed': 'Check that the source file is a readable video with an audio track and that ffmpeg is installed',
            'TranscriptionFailed': 'Try a different Whisper model or verify the source language',
            'SegmentationEmpty': 'Check the transcript timestamps or switch segmentation mode',
            'TranslationFailed': 'Verify GEMINI_API_KEY and network connectivity, or retry later',
            'SubtitleGenerationFailed': 'Check that the output directory exists and is writable',
            'SynthesisFailed': 'Check the TTS voice name and network connectivity',
            'AssemblyFailed': 'Check free disk space in the source folder and that ffmpeg is installed',
            'CompositionFailed': 'Check free disk space and that the output directory is writable',
            'ConfigurationError': 'Review the job settings: languages, model and segment duration',
            'FileNotFoundError': 'Verify that the file path is correct and the file exists',
            'PermissionError': 'Check file permissions and ensure you have read/write access',
            'RuntimeError': 'Check system resources and try again with different settings',
            'TimeoutError': 'Increase timeout duration or check network speed',
        }
