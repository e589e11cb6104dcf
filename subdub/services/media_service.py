"""Media prober/transcoder implementation using FFmpeg."""

import logging
import os
from typing import List, Optional

import ffmpeg

from .base import BaseMediaService


logger = logging.getLogger(__name__)

SILENCE_SOURCE = 'anullsrc=r=48000:cl=stereo'


def _ffmpeg_error(e: "ffmpeg.Error") -> str:
    return e.stderr.decode(errors='replace') if e.stderr else str(e)


def _require_file(path: str, label: str) -> None:
    if not os.path.exists(path):
        raise FileNotFoundError(f"{label} not found: {path}")


def _check_output(path: str, action: str) -> str:
    if not os.path.exists(path):
        raise RuntimeError(f"{action} failed - output file not created")
    return path


def _concat_line(path: str) -> str:
    # Paths are single-quoted in the concat list
    escaped = os.path.abspath(path).replace("'", "'\\''")
    return f"file '{escaped}'\n"


class MediaService(BaseMediaService):
    """Concrete media operations on top of ffmpeg-python.

    Every method raises ``FileNotFoundError`` for missing inputs and
    ``RuntimeError`` with ffmpeg's stderr when the transcoder fails.
    """

    def extract_audio(self, video_path: str, output_path: str) -> str:
        """Extract the audio track of a video as 44.1 kHz stereo MP3."""
        _require_file(video_path, "Video file")

        try:
            (
                ffmpeg
                .input(video_path)
                .output(output_path, vn=None, ar=44100, ac=2, audio_bitrate='192k', f='mp3')
                .overwrite_output()
                .run(quiet=True, capture_stdout=True)
            )
        except ffmpeg.Error as e:
            raise RuntimeError(f"FFmpeg audio extraction failed: {_ffmpeg_error(e)}")

        logger.debug(f"Extracted audio: {output_path}")
        return _check_output(output_path, "Audio extraction")

    def probe_duration(self, path: str) -> Optional[float]:
        """Container duration in seconds, or None if it cannot be read."""
        if not os.path.exists(path):
            return None

        try:
            probe = ffmpeg.probe(path)
            return float(probe['format']['duration'])
        except ffmpeg.Error as e:
            logger.warning(f"FFmpeg probe failed for {path}: {_ffmpeg_error(e)}")
        except (KeyError, TypeError, ValueError):
            logger.warning(f"No duration reported for {path}")
        return None

    def transform_tempo(self, input_path: str, factors: List[float], output_path: str) -> str:
        """Apply one ``atempo`` filter per factor, in order."""
        _require_file(input_path, "Audio file")
        if not factors:
            raise ValueError("At least one tempo factor is required")

        stream = ffmpeg.input(input_path).audio
        for factor in factors:
            stream = stream.filter('atempo', f"{factor:.6f}")

        try:
            (
                ffmpeg
                .output(stream, output_path, acodec='libmp3lame', audio_bitrate='128k')
                .overwrite_output()
                .run(quiet=True, capture_stdout=True)
            )
        except ffmpeg.Error as e:
            raise RuntimeError(f"FFmpeg tempo adjustment failed: {_ffmpeg_error(e)}")

        return _check_output(output_path, "Tempo adjustment")

    def generate_silence(self, duration: float, output_path: str) -> str:
        if duration <= 0:
            raise ValueError(f"Silence duration must be positive, got {duration}")

        try:
            (
                ffmpeg
                .input(SILENCE_SOURCE, f='lavfi', t=f"{duration:.3f}")
                .output(output_path, acodec='libmp3lame', audio_bitrate='128k')
                .overwrite_output()
                .run(quiet=True, capture_stdout=True)
            )
        except ffmpeg.Error as e:
            raise RuntimeError(f"FFmpeg silence generation failed: {_ffmpeg_error(e)}")

        return _check_output(output_path, "Silence generation")

    def concatenate(self, input_paths: List[str], output_path: str) -> str:
        """Concatenate audio files through a concat list next to the output."""
        if not input_paths:
            raise ValueError("Nothing to concatenate")
        for path in input_paths:
            _require_file(path, "Audio file")

        list_path = f"{os.path.splitext(output_path)[0]}_concat.txt"
        with open(list_path, 'w', encoding='utf-8') as f:
            f.writelines(_concat_line(path) for path in input_paths)

        try:
            (
                ffmpeg
                .input(list_path, f='concat', safe=0)
                .output(output_path, acodec='libmp3lame', audio_bitrate='192k')
                .overwrite_output()
                .run(quiet=True, capture_stdout=True)
            )
        except ffmpeg.Error as e:
            raise RuntimeError(f"FFmpeg concatenation failed: {_ffmpeg_error(e)}")
        finally:
            if os.path.exists(list_path):
                os.remove(list_path)

        return _check_output(output_path, "Concatenation")

    def mux(
        self,
        video_path: str,
        audio_path: str,
        output_path: str,
        subtitle_path: Optional[str] = None
    ) -> str:
        """Copy the video stream, replace its audio and optionally add a subtitle track."""
        _require_file(video_path, "Video file")
        _require_file(audio_path, "Dubbed audio file")

        streams = [ffmpeg.input(video_path)['v:0'], ffmpeg.input(audio_path)['a:0']]
        options = {'vcodec': 'copy', 'acodec': 'aac', 'audio_bitrate': '192k'}

        if subtitle_path and os.path.exists(subtitle_path):
            streams.append(ffmpeg.input(subtitle_path)['s:0'])
            options['scodec'] = 'mov_text'
        elif subtitle_path:
            logger.warning(f"Subtitle file not found, composing without it: {subtitle_path}")

        try:
            (
                ffmpeg
                .output(*streams, output_path, **options)
                .overwrite_output()
                .run(quiet=True, capture_stdout=True)
            )
        except ffmpeg.Error as e:
            raise RuntimeError(f"FFmpeg video creation failed: {_ffmpeg_error(e)}")

        return _check_output(output_path, "Video creation")
