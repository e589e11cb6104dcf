"""Property-based tests for gap computation and audio assembly.

Property: Silence schedule preserves timing
For any ordered, non-overlapping clips, every emitted gap is at least the
minimum duration, equals the distance between its neighbours, and the
timeline interleaves silences and clips in start-time order.
"""

import os

import pytest
from hypothesis import given, strategies as st, settings

from subdub.exceptions import AssemblyFailed, JobCancelled
from subdub.models.core import Gap, SynthesizedClip
from subdub.services.audio_assembly import (
    MIN_GAP_DURATION,
    AudioAssembler,
    build_timeline,
    compute_gaps,
)
from subdub.services.events import CancellationToken


@st.composite
def clip_schedule(draw, max_size=20):
    """Generate clips ordered by start time without overlaps."""
    count = draw(st.integers(min_value=0, max_value=max_size))
    clips = []
    cursor = 0.0
    for index in range(count):
        gap = draw(st.floats(min_value=0.0, max_value=3.0))
        length = draw(st.floats(min_value=0.1, max_value=5.0))
        start = cursor + gap
        clips.append(SynthesizedClip(index=index + 1, text=f"clip {index}",
                                     start_time=start, end_time=start + length))
        cursor = start + length
    return clips


class TestGapProperties:
    """Property-based tests for the silence schedule."""

    @given(clips=clip_schedule())
    @settings(max_examples=200, deadline=None)
    def test_no_gap_below_minimum_property(self, clips):
        """Property: Every emitted gap lasts at least the minimum duration."""
        for gap in compute_gaps(clips):
            assert gap.duration >= MIN_GAP_DURATION

    @given(clips=clip_schedule())
    @settings(max_examples=200, deadline=None)
    def test_gap_matches_neighbour_distance_property(self, clips):
        """Property: An inner gap equals next.start - previous.end and a
        leading gap equals the first clip's start."""
        for gap in compute_gaps(clips):
            if gap.position == 0:
                assert gap.duration == clips[0].start_time
            else:
                expected = clips[gap.position].start_time - clips[gap.position - 1].end_time
                assert gap.duration == pytest.approx(expected)

    @given(clips=clip_schedule())
    @settings(max_examples=200, deadline=None)
    def test_every_large_gap_is_emitted_property(self, clips):
        """Property: Every inner distance of at least the minimum gets a silence."""
        positions = {gap.position for gap in compute_gaps(clips)}
        for index in range(1, len(clips)):
            distance = clips[index].start_time - clips[index - 1].end_time
            assert (index in positions) == (distance >= MIN_GAP_DURATION)

    @given(clips=clip_schedule())
    @settings(max_examples=200, deadline=None)
    def test_timeline_order_property(self, clips):
        """Property: The timeline keeps clips in order, each preceded by at most one silence."""
        gaps = compute_gaps(clips)
        timeline = build_timeline(clips, gaps)

        assert [item for kind, item in timeline if kind == 'clip'] == clips
        assert len(timeline) == len(clips) + len(gaps)
        for position, (kind, _) in enumerate(timeline[:-1]):
            if kind == 'silence':
                assert timeline[position + 1][0] == 'clip'

    @given(clips=clip_schedule(max_size=10))
    @settings(max_examples=100, deadline=None)
    def test_unordered_input_is_sorted_property(self, clips):
        """Property: Gaps do not depend on input order."""
        assert compute_gaps(list(reversed(clips))) == compute_gaps(clips)


class TestGapExamples:

    def test_empty_clips_have_no_gaps(self):
        assert compute_gaps([]) == []

    def test_leading_and_inner_gaps(self):
        clips = [
            SynthesizedClip(1, "a", 0.5, 1.5),
            SynthesizedClip(2, "b", 3.0, 4.0),
            SynthesizedClip(3, "c", 4.02, 5.0),
        ]

        gaps = compute_gaps(clips)

        assert gaps == [Gap(position=0, duration=0.5), Gap(position=1, duration=1.5)]

    def test_half_second_between_clips(self):
        clips = [SynthesizedClip(1, "a", 0.0, 1.0), SynthesizedClip(2, "b", 1.5, 2.0)]

        timeline = build_timeline(clips, compute_gaps(clips))

        assert [kind for kind, _ in timeline] == ['clip', 'silence', 'clip']
        assert timeline[1][1].duration == pytest.approx(0.5)


class TestAudioAssembler:

    def _clips(self, temp_dir, spans):
        clips = []
        for index, (start, end) in enumerate(spans, start=1):
            path = os.path.join(temp_dir, f"segment_{index:03d}.mp3")
            with open(path, 'wb') as f:
                f.write(b'audio')
            clips.append(SynthesizedClip(index, f"text {index}", start, end, audio_path=path))
        return clips

    def test_assembles_clips_with_silences(self, fake_media, temp_dir):
        clips = self._clips(temp_dir, [(1.0, 2.0), (2.5, 3.0)])
        output = os.path.join(temp_dir, "dubbed_audio.mp3")
        progress = []

        result = AudioAssembler(fake_media).assemble(
            clips, output, temp_dir, progress_callback=progress.append
        )

        assert result == output
        silences = fake_media.calls_named('generate_silence')
        assert [call[1] for call in silences] == pytest.approx([1.0, 0.5])
        (concat,) = fake_media.calls_named('concatenate')
        inputs = concat[1]
        assert inputs[0] == silences[0][2]
        assert inputs[1] == clips[0].audio_path
        assert inputs[2] == silences[1][2]
        assert inputs[3] == clips[1].audio_path
        assert progress == [0.2, 0.7, 1.0]

    def test_missing_clip_audio_fails(self, fake_media, temp_dir):
        clips = self._clips(temp_dir, [(0.0, 1.0)])
        clips.append(SynthesizedClip(2, "lost", 1.5, 2.0, audio_path=os.path.join(temp_dir, "nope.mp3")))

        with pytest.raises(AssemblyFailed, match="Missing audio"):
            AudioAssembler(fake_media).assemble(clips, os.path.join(temp_dir, "out.mp3"), temp_dir)

        assert fake_media.calls_named('concatenate') == []

    def test_no_clips_fails(self, fake_media, temp_dir):
        with pytest.raises(AssemblyFailed):
            AudioAssembler(fake_media).assemble([], os.path.join(temp_dir, "out.mp3"), temp_dir)

    def test_concatenate_failure_is_assembly_failure(self, fake_media, temp_dir):
        clips = self._clips(temp_dir, [(0.0, 1.0)])
        fake_media.fail_on.add('concatenate')

        with pytest.raises(AssemblyFailed, match="Failed to concatenate"):
            AudioAssembler(fake_media).assemble(clips, os.path.join(temp_dir, "out.mp3"), temp_dir)

    @pytest.mark.parametrize("call", ['concatenate', 'generate_silence'])
    def test_os_error_is_assembly_failure(self, fake_media, temp_dir, call):
        clips = self._clips(temp_dir, [(1.0, 2.0)])
        fake_media.errors[call] = PermissionError("read-only file system")

        with pytest.raises(AssemblyFailed, match="read-only file system"):
            AudioAssembler(fake_media).assemble(clips, os.path.join(temp_dir, "out.mp3"), temp_dir)

    def test_cancelled_before_concatenation(self, fake_media, temp_dir):
        clips = self._clips(temp_dir, [(0.0, 1.0), (2.0, 3.0)])
        token = CancellationToken("job")
        token.cancel()

        with pytest.raises(JobCancelled):
            AudioAssembler(fake_media).assemble(
                clips, os.path.join(temp_dir, "out.mp3"), temp_dir, token=token
            )

        assert fake_media.calls_named('concatenate') == []
