"""Service layer for the SubDub job engine."""

from .asr_service import ASRService
from .audio_assembly import AudioAssembler
from .config_manager import ConfigurationManager, HardwareInfo, ResourceUsage
from .error_handler import ErrorHandler, ErrorRecord, ErrorSeverity
from .events import CancellationToken, EventStream
from .file_handler import FileHandler
from .job_scheduler import JobScheduler, JobStore
from .media_service import MediaService
from .pipeline_executor import PipelineExecutor
from .segmentation import SegmentationService
from .subtitle_exporter import SubtitleExporter
from .tempo import TempoCorrector
from .translation_service import TranslationService
from .tts_service import TTSService

__all__ = [
    'ASRService',
    'AudioAssembler',
    'ConfigurationManager',
    'HardwareInfo',
    'ResourceUsage',
    'ErrorHandler',
    'ErrorRecord',
    'ErrorSeverity',
    'CancellationToken',
    'EventStream',
    'FileHandler',
    'JobScheduler',
    'JobStore',
    'MediaService',
    'PipelineExecutor',
    'SegmentationService',
    'SubtitleExporter',
    'TempoCorrector',
    'TranslationService',
    'TTSService',
]
