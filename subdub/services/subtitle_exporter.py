"""Subtitle export in SRT, WebVTT and ASS formats.

Each format renders one text side of a list of bilingual segments; ``write``
produces the original-language file and, when asked, the translated one.
"""

from pathlib import Path
from typing import Callable, Dict, List, Optional

from ..models.core import BilingualSegment
from ..models.job import SubtitleFormat
from .base import BaseSubtitleWriter
from .error_handler import ErrorHandler, ErrorSeverity


DEFAULT_ASS_STYLE = {
    'font_name': 'Arial',
    'font_size': 48,
    'primary_color': '&H00FFFFFF',
    'secondary_color': '&H000000FF',
    'outline_color': '&H00000000',
    'back_color': '&H80000000',
    'bold': 0,
    'italic': 0,
    'border_style': 1,
    'outline': 2,
    'shadow': 0,
    'alignment': 2,
    'margin_l': 80,
    'margin_r': 80,
    'margin_v': 60
}


def _split_ms(seconds: float):
    total_ms = int(round(max(0.0, seconds) * 1000))
    hours, rest = divmod(total_ms, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    secs, millis = divmod(rest, 1000)
    return hours, minutes, secs, millis


def format_srt_timestamp(seconds: float) -> str:
    """HH:MM:SS,mmm"""
    hours, minutes, secs, millis = _split_ms(seconds)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{millis:03d}"


def format_vtt_timestamp(seconds: float) -> str:
    """HH:MM:SS.mmm"""
    hours, minutes, secs, millis = _split_ms(seconds)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{millis:03d}"


def format_ass_timestamp(seconds: float) -> str:
    """H:MM:SS.cc"""
    hours, minutes, secs, millis = _split_ms(seconds)
    return f"{hours}:{minutes:02d}:{secs:02d}.{millis // 10:02d}"


def _text(segment: BilingualSegment, use_translation: bool) -> str:
    return segment.translated if use_translation else segment.original


def render_srt(segments: List[BilingualSegment], use_translation: bool = False) -> str:
    blocks = []
    for idx, segment in enumerate(segments, start=1):
        blocks.append(
            f"{idx}\n"
            f"{format_srt_timestamp(segment.start_time)} --> {format_srt_timestamp(segment.end_time)}\n"
            f"{_text(segment, use_translation)}\n"
        )
    return "\n".join(blocks)


def render_vtt(segments: List[BilingualSegment], use_translation: bool = False) -> str:
    content = "WEBVTT\n\n"
    for segment in segments:
        content += f"{format_vtt_timestamp(segment.start_time)} --> {format_vtt_timestamp(segment.end_time)}\n"
        content += f"{_text(segment, use_translation)}\n\n"
    return content


def render_ass(
    segments: List[BilingualSegment],
    use_translation: bool = False,
    style_config: Optional[dict] = None
) -> str:
    style = {**DEFAULT_ASS_STYLE, **(style_config or {})}

    lines = [
        "[Script Info]",
        "Title: SubDub Subtitles",
        "ScriptType: v4.00+",
        "WrapStyle: 0",
        "PlayResX: 1920",
        "PlayResY: 1080",
        "",
        "[V4+ Styles]",
        "Format: Name, Fontname, Fontsize, PrimaryColour, SecondaryColour, OutlineColour, BackColour, "
        "Bold, Italic, Underline, StrikeOut, ScaleX, ScaleY, Spacing, Angle, BorderStyle, Outline, "
        "Shadow, Alignment, MarginL, MarginR, MarginV, Encoding",
        f"Style: Default,{style['font_name']},{style['font_size']},{style['primary_color']},"
        f"{style['secondary_color']},{style['outline_color']},{style['back_color']},"
        f"{style['bold']},{style['italic']},0,0,100,100,0,0,{style['border_style']},"
        f"{style['outline']},{style['shadow']},{style['alignment']},{style['margin_l']},"
        f"{style['margin_r']},{style['margin_v']},1",
        "",
        "[Events]",
        "Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text",
    ]

    for segment in segments:
        text = _text(segment, use_translation).replace('\n', '\\N')
        lines.append(
            f"Dialogue: 0,{format_ass_timestamp(segment.start_time)},"
            f"{format_ass_timestamp(segment.end_time)},Default,,0,0,0,,{text}"
        )

    return "\n".join(lines) + "\n"


_RENDERERS: Dict[SubtitleFormat, Callable[[List[BilingualSegment], bool], str]] = {
    SubtitleFormat.SRT: render_srt,
    SubtitleFormat.VTT: render_vtt,
    SubtitleFormat.ASS: render_ass,
}


class SubtitleExporter(BaseSubtitleWriter):
    """Service for exporting subtitles in various formats."""

    def __init__(self, error_handler: Optional[ErrorHandler] = None):
        self.error_handler = error_handler or ErrorHandler()

    def export(
        self,
        subtitle_format: SubtitleFormat,
        segments: List[BilingualSegment],
        output_path: str,
        use_translation: bool = False
    ) -> bool:
        """Export one side of the segments.

        Returns:
            True if export successful, False otherwise
        """
        try:
            content = _RENDERERS[subtitle_format](segments, use_translation)
            Path(output_path).parent.mkdir(parents=True, exist_ok=True)
            with open(output_path, 'w', encoding='utf-8') as f:
                f.write(content)

            self.error_handler.log_info(
                f"Successfully exported {subtitle_format.name} subtitles to {output_path}",
                context={'num_segments': len(segments), 'use_translation': use_translation}
            )
            return True

        except OSError as e:
            self.error_handler.log_error(
                e,
                severity=ErrorSeverity.ERROR,
                context={'output_path': output_path, 'format': subtitle_format.name},
                recovery_suggestion="Check file permissions and disk space"
            )
            return False

    def write(
        self,
        subtitle_format: SubtitleFormat,
        segments: List[BilingualSegment],
        original_path: str,
        translated_path: Optional[str] = None
    ) -> None:
        """Write the original-language file, plus the translated one when a path is given.

        Raises:
            ValueError: If there are no segments
            RuntimeError: If a file cannot be written
        """
        if not segments:
            raise ValueError("No segments to generate subtitles")

        if not self.export(subtitle_format, segments, original_path, use_translation=False):
            raise RuntimeError(f"Failed to save original subtitles: {original_path}")

        if translated_path and not self.export(subtitle_format, segments, translated_path, use_translation=True):
            raise RuntimeError(f"Failed to save translated subtitles: {translated_path}")
