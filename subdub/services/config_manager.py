"""Configuration management: environment settings and system resource checks."""

import os
import platform
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import psutil

from ..exceptions import ConfigurationError
from ..models.job import JobConfig


logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT = 3
MAX_CONCURRENT_ENV = 'SUBDUB_MAX_CONCURRENT'
GEMINI_API_KEY_ENV = 'GEMINI_API_KEY'

# Rough resident memory per loaded Whisper model, in GB
WHISPER_MEMORY_GB = {
    'tiny': 1.0,
    'base': 1.0,
    'small': 2.0,
    'medium': 5.0,
    'large-v2': 10.0,
    'large-v3': 10.0,
}


@dataclass
class HardwareInfo:
    """Information about system hardware capabilities."""
    cpu_count: int = 0
    total_memory_gb: float = 0.0
    available_memory_gb: float = 0.0
    platform: str = ""
    python_version: str = ""


@dataclass
class ResourceUsage:
    """Current system resource usage."""
    cpu_percent: float = 0.0
    memory_percent: float = 0.0
    memory_used_gb: float = 0.0
    memory_available_gb: float = 0.0
    disk_usage_percent: float = 0.0


class ConfigurationManager:
    """Reads environment settings and checks resources before a run."""

    def __init__(self):
        self.hardware_info = self._detect_hardware()
        self._config_cache: Dict[str, Optional[str]] = {}

    def _detect_hardware(self) -> HardwareInfo:
        info = HardwareInfo()
        info.platform = platform.system()
        info.python_version = platform.python_version()
        info.cpu_count = psutil.cpu_count(logical=True) or 1

        memory = psutil.virtual_memory()
        info.total_memory_gb = memory.total / (1024 ** 3)
        info.available_memory_gb = memory.available / (1024 ** 3)

        logger.debug(f"Hardware detected: {info}")
        return info

    def get_resource_usage(self, path: str = '/') -> ResourceUsage:
        """Current CPU, memory and disk usage (disk measured at ``path``)."""
        usage = ResourceUsage()
        usage.cpu_percent = psutil.cpu_percent(interval=0.1)

        memory = psutil.virtual_memory()
        usage.memory_percent = memory.percent
        usage.memory_used_gb = memory.used / (1024 ** 3)
        usage.memory_available_gb = memory.available / (1024 ** 3)

        usage.disk_usage_percent = psutil.disk_usage(path).percent
        return usage

    def recommended_max_concurrent(self) -> int:
        """Worker count: the environment override, else the default capped by CPU cores.

        Raises:
            ConfigurationError: If the environment override is not a positive integer
        """
        raw = self.get_env_variable(MAX_CONCURRENT_ENV)
        if raw:
            try:
                value = int(raw)
            except ValueError:
                raise ConfigurationError(f"{MAX_CONCURRENT_ENV} must be an integer, got {raw!r}")
            if value < 1:
                raise ConfigurationError(f"{MAX_CONCURRENT_ENV} must be at least 1, got {value}")
            return value

        return max(1, min(DEFAULT_MAX_CONCURRENT, self.hardware_info.cpu_count))

    def validate_configuration(self, config: JobConfig) -> Tuple[bool, List[str]]:
        """Validate a job configuration and its environment.

        Returns:
            Tuple of (is_valid, error_messages)
        """
        errors = []

        try:
            config.validate()
        except ConfigurationError as e:
            errors.append(str(e))

        if config.mode.requires_translation:
            api_key = self.get_env_variable(GEMINI_API_KEY_ENV)
            if api_key and len(api_key) < 10:
                errors.append("Gemini API key appears to be invalid (too short)")

        if config.mode.generates_video and not config.tts_voice:
            errors.append("A TTS voice is required to generate dubbed video")

        if config.output_directory and os.path.exists(config.output_directory) \
                and not os.path.isdir(config.output_directory):
            errors.append(f"Output path is not a directory: {config.output_directory}")

        return len(errors) == 0, errors

    def check_resource_availability(
        self,
        config: Optional[JobConfig] = None,
        max_concurrent: int = 1,
        path: str = '/'
    ) -> Tuple[bool, str]:
        """Check that memory and disk allow ``max_concurrent`` jobs of ``config``.

        Returns:
            Tuple of (is_available, message)
        """
        model = config.whisper_model if config else 'base'
        required_memory_gb = WHISPER_MEMORY_GB.get(model, 2.0) + 0.5 * max(0, max_concurrent - 1)
        usage = self.get_resource_usage(path)

        if usage.memory_available_gb < required_memory_gb:
            return False, (
                f"Insufficient memory available. "
                f"Required: {required_memory_gb:.1f} GB, "
                f"Available: {usage.memory_available_gb:.1f} GB"
            )

        if usage.disk_usage_percent > 99:
            return False, "Insufficient disk space for temporary files"

        if usage.cpu_percent > 95:
            return True, (
                f"Warning: High CPU usage ({usage.cpu_percent:.1f}%). "
                "Processing may be slower than expected."
            )

        return True, "Sufficient resources available"

    def get_env_variable(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Get an environment variable, cached after the first read."""
        if key in self._config_cache:
            return self._config_cache[key]

        value = os.environ.get(key, default)
        self._config_cache[key] = value
        return value

    def get_hardware_summary(self) -> str:
        info = self.hardware_info
        lines = [
            "=== Hardware Summary ===",
            f"Platform: {info.platform}",
            f"Python: {info.python_version}",
            f"CPU Cores: {info.cpu_count}",
            f"Total Memory: {info.total_memory_gb:.1f} GB",
            f"Available Memory: {info.available_memory_gb:.1f} GB",
            f"Recommended concurrent jobs: {self.recommended_max_concurrent()}",
            "=" * 24,
        ]
        return "\n".join(lines)
