"""Unit tests for the ffmpeg-backed media service."""

import os
from unittest.mock import MagicMock, patch

import ffmpeg
import pytest

from subdub.services.media_service import MediaService


def touch(path, content=b'data'):
    with open(path, 'wb') as f:
        f.write(content)
    return path


@pytest.fixture
def mock_ffmpeg():
    """Replace the ffmpeg module, keeping its real error type."""
    with patch('subdub.services.media_service.ffmpeg') as mocked:
        mocked.Error = ffmpeg.Error
        yield mocked


def creates_output(path):
    def run(*args, **kwargs):
        touch(path)
        return b'', b''
    return run


class TestAudioExtraction:

    def test_missing_video(self, temp_dir):
        with pytest.raises(FileNotFoundError, match="Video file not found"):
            MediaService().extract_audio(os.path.join(temp_dir, "missing.mp4"), os.path.join(temp_dir, "a.mp3"))

    def test_extract_audio(self, mock_ffmpeg, sample_video_file, temp_dir):
        output = os.path.join(temp_dir, "audio.mp3")
        chain = mock_ffmpeg.input.return_value.output.return_value.overwrite_output.return_value
        chain.run.side_effect = creates_output(output)

        assert MediaService().extract_audio(sample_video_file, output) == output

        mock_ffmpeg.input.assert_called_once_with(sample_video_file)
        mock_ffmpeg.input.return_value.output.assert_called_once_with(
            output, vn=None, ar=44100, ac=2, audio_bitrate='192k', f='mp3'
        )

    def test_ffmpeg_error_carries_stderr(self, mock_ffmpeg, sample_video_file, temp_dir):
        chain = mock_ffmpeg.input.return_value.output.return_value.overwrite_output.return_value
        chain.run.side_effect = ffmpeg.Error('ffmpeg', b'', b'Invalid data found when processing input')

        with pytest.raises(RuntimeError, match="Invalid data found"):
            MediaService().extract_audio(sample_video_file, os.path.join(temp_dir, "audio.mp3"))

    def test_missing_output_is_failure(self, mock_ffmpeg, sample_video_file, temp_dir):
        with pytest.raises(RuntimeError, match="output file not created"):
            MediaService().extract_audio(sample_video_file, os.path.join(temp_dir, "audio.mp3"))


class TestProbe:

    def test_probe_duration(self, mock_ffmpeg, sample_video_file):
        mock_ffmpeg.probe.return_value = {'format': {'duration': '2.500000'}}

        assert MediaService().probe_duration(sample_video_file) == 2.5

    def test_probe_missing_file(self, temp_dir):
        assert MediaService().probe_duration(os.path.join(temp_dir, "missing.mp3")) is None

    def test_probe_failure(self, mock_ffmpeg, sample_video_file):
        mock_ffmpeg.probe.side_effect = ffmpeg.Error('ffprobe', b'', b'moov atom not found')

        assert MediaService().probe_duration(sample_video_file) is None

    def test_probe_without_duration(self, mock_ffmpeg, sample_video_file):
        mock_ffmpeg.probe.return_value = {'format': {}}

        assert MediaService().probe_duration(sample_video_file) is None


class TestTempoAndSilence:

    def test_tempo_chain_applies_one_filter_per_factor(self, mock_ffmpeg, temp_dir):
        source = touch(os.path.join(temp_dir, "temp_segment_001.mp3"))
        output = os.path.join(temp_dir, "segment_001.mp3")
        first = mock_ffmpeg.input.return_value.audio.filter
        second = first.return_value.filter
        mock_ffmpeg.output.return_value.overwrite_output.return_value.run.side_effect = creates_output(output)

        MediaService().transform_tempo(source, [2.0, 1.5], output)

        first.assert_called_once_with('atempo', '2.000000')
        second.assert_called_once_with('atempo', '1.500000')
        mock_ffmpeg.output.assert_called_once_with(
            second.return_value, output, acodec='libmp3lame', audio_bitrate='128k'
        )

    def test_tempo_requires_factors(self, temp_dir):
        source = touch(os.path.join(temp_dir, "clip.mp3"))

        with pytest.raises(ValueError):
            MediaService().transform_tempo(source, [], os.path.join(temp_dir, "out.mp3"))

    def test_silence(self, mock_ffmpeg, temp_dir):
        output = os.path.join(temp_dir, "silence_001.mp3")
        chain = mock_ffmpeg.input.return_value.output.return_value.overwrite_output.return_value
        chain.run.side_effect = creates_output(output)

        MediaService().generate_silence(1.25, output)

        mock_ffmpeg.input.assert_called_once_with('anullsrc=r=48000:cl=stereo', f='lavfi', t='1.250')

    @pytest.mark.parametrize("duration", [0.0, -1.0])
    def test_silence_requires_positive_duration(self, duration, temp_dir):
        with pytest.raises(ValueError):
            MediaService().generate_silence(duration, os.path.join(temp_dir, "s.mp3"))


class TestConcatenateAndMux:

    def test_concat_list_is_written_and_removed(self, mock_ffmpeg, temp_dir):
        clips = [touch(os.path.join(temp_dir, name)) for name in ("a.mp3", "it's.mp3")]
        output = os.path.join(temp_dir, "dubbed_audio.mp3")
        list_path = os.path.join(temp_dir, "dubbed_audio_concat.txt")
        seen = {}

        def run(*args, **kwargs):
            with open(list_path, encoding='utf-8') as f:
                seen['list'] = f.read()
            touch(output)

        chain = mock_ffmpeg.input.return_value.output.return_value.overwrite_output.return_value
        chain.run.side_effect = run

        MediaService().concatenate(clips, output)

        mock_ffmpeg.input.assert_called_once_with(list_path, f='concat', safe=0)
        escaped = os.path.join(os.path.abspath(temp_dir), "it'\\''s.mp3")
        assert seen['list'] == (
            f"file '{os.path.abspath(clips[0])}'\n"
            f"file '{escaped}'\n"
        )
        assert not os.path.exists(list_path)

    def test_concat_missing_input(self, temp_dir):
        with pytest.raises(FileNotFoundError):
            MediaService().concatenate([os.path.join(temp_dir, "gone.mp3")], os.path.join(temp_dir, "out.mp3"))

    def test_mux_with_subtitles(self, mock_ffmpeg, sample_video_file, temp_dir):
        audio = touch(os.path.join(temp_dir, "dubbed_audio.mp3"))
        subtitles = touch(os.path.join(temp_dir, "sample_ru.srt"))
        output = os.path.join(temp_dir, "sample_ru.mp4")
        mock_ffmpeg.input.return_value = MagicMock()
        mock_ffmpeg.output.return_value.overwrite_output.return_value.run.side_effect = creates_output(output)

        MediaService().mux(sample_video_file, audio, output, subtitles)

        args, kwargs = mock_ffmpeg.output.call_args
        assert len(args) == 4
        assert args[-1] == output
        assert kwargs['vcodec'] == 'copy'
        assert kwargs['acodec'] == 'aac'
        assert kwargs['scodec'] == 'mov_text'

    def test_mux_without_subtitles(self, mock_ffmpeg, sample_video_file, temp_dir):
        audio = touch(os.path.join(temp_dir, "dubbed_audio.mp3"))
        output = os.path.join(temp_dir, "sample_ru.mp4")
        mock_ffmpeg.input.return_value = MagicMock()
        mock_ffmpeg.output.return_value.overwrite_output.return_value.run.side_effect = creates_output(output)

        MediaService().mux(sample_video_file, audio, output, os.path.join(temp_dir, "missing.srt"))

        args, kwargs = mock_ffmpeg.output.call_args
        assert len(args) == 3
        assert 'scodec' not in kwargs

    def test_mux_missing_audio(self, sample_video_file, temp_dir):
        with pytest.raises(FileNotFoundError, match="Dubbed audio file not found"):
            MediaService().mux(sample_video_file, os.path.join(temp_dir, "none.mp3"),
                               os.path.join(temp_dir, "out.mp4"))
