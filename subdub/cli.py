"""Command-line interface for SubDub.

Queues every input video as a job and runs the queue with bounded
concurrency, logging progress events as they arrive.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .exceptions import ConfigurationError
from .models.job import EventType, Job, JobConfig, JobEvent, JobStatus, PipelineMode, SubtitleFormat
from .services.asr_service import ASRService
from .services.config_manager import ConfigurationManager, GEMINI_API_KEY_ENV
from .services.error_handler import ErrorHandler
from .services.events import EventStream
from .services.file_handler import FileHandler
from .services.job_scheduler import JobScheduler
from .services.media_service import MediaService
from .services.pipeline_executor import PipelineExecutor
from .services.subtitle_exporter import SubtitleExporter
from .services.translation_service import TranslationService
from .services.tts_service import TTSService


logger = logging.getLogger(__name__)

EVENT_POLL_INTERVAL = 0.5


class SubDubCLI:
    """Command-line driver around the job scheduler."""

    def __init__(self, config_manager: Optional[ConfigurationManager] = None):
        self.error_handler = ErrorHandler()
        self.file_handler = FileHandler()
        self.config_manager = config_manager or ConfigurationManager()

    def collect_jobs(self, inputs: List[str], config: JobConfig) -> List[Job]:
        """Jobs for every input file, and for every video found in input folders."""
        jobs: List[Job] = []
        for item in inputs:
            path = Path(item)
            if path.is_dir():
                found = self.file_handler.jobs_from_folder(path, config)
                logger.info(f"Found {len(found)} video(s) in {path}")
                jobs.extend(found)
            elif self.file_handler.validate_file(path):
                jobs.extend(self.file_handler.create_jobs([path], config))
            else:
                logger.error(f"Skipping unsupported or missing input: {item}")
        return jobs

    def build_executor(self) -> PipelineExecutor:
        translator = TranslationService(
            gemini_api_key=self.config_manager.get_env_variable(GEMINI_API_KEY_ENV)
        )
        return PipelineExecutor(
            media_service=MediaService(),
            asr_service=ASRService(),
            translation_service=translator,
            tts_service=TTSService(),
            subtitle_writer=SubtitleExporter(self.error_handler),
        )

    def run(self, inputs: List[str], config: JobConfig, max_concurrent: Optional[int] = None) -> bool:
        """Process all inputs. Returns True if no job failed.

        Raises:
            ConfigurationError: If the configuration or concurrency setting is invalid
        """
        is_valid, errors = self.config_manager.validate_configuration(config)
        if not is_valid:
            raise ConfigurationError("; ".join(errors))

        jobs = self.collect_jobs(inputs, config)
        if not jobs:
            logger.error("No video files to process")
            return False

        limit = max_concurrent or self.config_manager.recommended_max_concurrent()
        logger.debug(self.config_manager.get_hardware_summary())
        available, message = self.config_manager.check_resource_availability(config, limit)
        if not available:
            logger.error(message)
            return False
        logger.info(message)

        scheduler = JobScheduler(self.build_executor(), limit, self.error_handler)
        subscriber = scheduler.events.subscribe()
        scheduler.submit(jobs)
        scheduler.start(limit)

        try:
            while not scheduler.wait(timeout=EVENT_POLL_INTERVAL):
                self._log_events(scheduler, subscriber)
        except KeyboardInterrupt:
            logger.warning("Interrupted, cancelling running jobs...")
            scheduler.stop()
            scheduler.wait()
        finally:
            self._log_events(scheduler, subscriber)
            scheduler.events.unsubscribe(subscriber)

        self._print_summary(scheduler)
        return scheduler.counts()[JobStatus.FAILED] == 0

    def _log_events(self, scheduler: JobScheduler, subscriber) -> None:
        for event in EventStream.drain(subscriber):
            self._log_event(scheduler, event)

    @staticmethod
    def _log_event(scheduler: JobScheduler, event: JobEvent) -> None:
        if event.type is EventType.QUEUE_CHANGED:
            logger.debug(f"Queue: {event.message}")
            return

        job = scheduler.get(event.job_id)
        name = job.file_name if job else event.job_id
        if event.type is EventType.STEP_CHANGED:
            logger.info(f"[{name}] {event.message} "
                        f"(overall {scheduler.overall_progress() * 100:.0f}%)")
        elif event.type is EventType.PROGRESS:
            logger.debug(f"[{name}] {event.message}")
        elif event.status is JobStatus.FAILED:
            logger.error(f"[{name}] failed: {event.error}")
        else:
            logger.info(f"[{name}] {event.message}")

    @staticmethod
    def _print_summary(scheduler: JobScheduler) -> None:
        print("\n=== Summary ===")
        for job in scheduler.jobs():
            elapsed = f" in {job.elapsed_seconds:.1f}s" if job.elapsed_seconds is not None else ""
            print(f"{job.status.value:>9}  {job.file_name}{elapsed}")
            if job.error:
                print(f"           {job.error}")
            if job.output_files:
                for path in job.output_files.paths():
                    print(f"           -> {path}")

        counts = scheduler.counts()
        print(
            f"\n{counts[JobStatus.SUCCEEDED]} succeeded, {counts[JobStatus.FAILED]} failed, "
            f"{counts[JobStatus.CANCELLED]} cancelled "
            f"(success rate {scheduler.success_rate() * 100:.0f}%)"
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="subdub",
        description="SubDub - generate subtitles, translate and dub videos in batches",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Full pipeline, English to Russian, for every video in a folder
  subdub videos/

  # Original-language subtitles only
  subdub talk.mp4 --mode subtitles_only

  # Translated WebVTT subtitles into a separate folder, two jobs at a time
  subdub a.mp4 b.mkv --mode subtitles_translation -t de -f vtt -o out/ -j 2
        """
    )

    parser.add_argument("inputs", nargs="+", help="Video files or folders to process")
    parser.add_argument("-o", "--output", help="Output directory (default: next to each video)")
    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in PipelineMode],
        default=PipelineMode.FULL_PIPELINE.value,
        help="Processing mode (default: full_pipeline)"
    )

    parser.add_argument("-s", "--source-lang", default="en", help="Source language code (default: en)")
    parser.add_argument("-t", "--target-lang", default="ru", help="Target language code (default: ru)")
    parser.add_argument(
        "-m", "--model",
        choices=["tiny", "base", "small", "medium", "large-v2", "large-v3"],
        default="base",
        help="Whisper model size (default: base)"
    )
    parser.add_argument("--voice", default="ru-RU-DmitryNeural", help="Edge TTS voice (default: ru-RU-DmitryNeural)")

    parser.add_argument(
        "--no-speed-sync",
        action="store_true",
        help="Keep synthesized speech at its natural tempo"
    )
    parser.add_argument(
        "--fixed-duration",
        type=float,
        metavar="SECONDS",
        help="Cut segments at a fixed duration instead of at sentence boundaries"
    )
    parser.add_argument("--keep-temp", action="store_true", help="Keep each job's working directory")
    parser.add_argument(
        "-f", "--format",
        choices=[fmt.value for fmt in SubtitleFormat],
        default=SubtitleFormat.SRT.value,
        help="Subtitle format (default: srt)"
    )
    parser.add_argument("-j", "--jobs", type=int, help="Maximum concurrent jobs")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    return parser


def config_from_args(args: argparse.Namespace) -> JobConfig:
    return JobConfig(
        mode=PipelineMode(args.mode),
        source_language=args.source_lang,
        target_language=args.target_lang,
        whisper_model=args.model,
        tts_voice=args.voice,
        enable_speed_sync=not args.no_speed_sync,
        use_fixed_segment_duration=args.fixed_duration is not None,
        fixed_segment_duration=args.fixed_duration if args.fixed_duration is not None else 7.0,
        cleanup_temp_files=not args.keep_temp,
        subtitle_format=SubtitleFormat(args.format),
        output_directory=args.output,
    )


def main(argv: Optional[List[str]] = None) -> None:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        success = SubDubCLI().run(args.inputs, config_from_args(args), args.jobs)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(2)

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
