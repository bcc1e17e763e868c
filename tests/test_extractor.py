"""
Frame Extractor Tests
=====================

Marker scanning over chunked input and accumulator caps.
"""

import random

import pytest

from mjpeg_relay.stream import Frame, FrameExtractor
from mjpeg_relay.stream.extractor import MAX_GARBAGE_BYTES, MAX_PARTIAL_FRAME_BYTES


def feed(extractor, chunks):
    frames = []
    for chunk in chunks:
        frames.extend(extractor.ingest(chunk))
    return [f.data for f in frames]


class TestSingleFrame:
    """Extraction of one well-formed image."""

    def test_exact_frame(self, sample_jpeg):
        extractor = FrameExtractor()
        frames = extractor.ingest(sample_jpeg)

        assert len(frames) == 1
        assert frames[0].data == sample_jpeg
        assert extractor.pending == 0

    def test_leading_garbage_discarded_trailing_kept(self, sample_jpeg):
        extractor = FrameExtractor()
        frames = extractor.ingest(b"--boundary\r\n" + sample_jpeg + b"\r\nnext")

        assert [f.data for f in frames] == [sample_jpeg]
        assert extractor.pending == len(b"\r\nnext")

    def test_frame_is_tagged_with_session_and_sequence(self, make_jpeg):
        extractor = FrameExtractor(session_id=7)
        first = extractor.ingest(make_jpeg(10))[0]
        second = extractor.ingest(make_jpeg(10, seed=3))[0]

        assert (first.session_id, first.sequence) == (7, 0)
        assert (second.session_id, second.sequence) == (7, 1)
        assert extractor.frames_emitted == 2

    def test_frame_repr_does_not_dump_payload(self, sample_jpeg):
        frame = Frame(data=sample_jpeg, session_id=1, sequence=2)
        assert "size=" in repr(frame)
        assert "\\xff" not in repr(frame)

    def test_no_markers_emits_nothing(self):
        extractor = FrameExtractor()
        assert extractor.ingest(b"no markers here") == []
        assert extractor.pending == len(b"no markers here")


class TestChunkBoundaries:
    """Splitting the input differently must not change the output."""

    def test_every_two_way_split(self, sample_jpeg):
        stream = b"garbage" + sample_jpeg + b"tail"
        expected = feed(FrameExtractor(), [stream])

        for cut in range(len(stream) + 1):
            got = feed(FrameExtractor(), [stream[:cut], stream[cut:]])
            assert got == expected, f"split at {cut}"

    def test_byte_by_byte(self, sample_jpeg):
        stream = b"xx" + sample_jpeg
        chunks = [stream[i:i + 1] for i in range(len(stream))]

        assert feed(FrameExtractor(), chunks) == [sample_jpeg]

    def test_random_splits(self, make_jpeg):
        image = make_jpeg(500)
        stream = b"\x00" * 40 + image + b"\x01" * 40
        rng = random.Random(1234)

        for _ in range(50):
            cuts = sorted(rng.sample(range(1, len(stream)), 6))
            bounds = [0] + cuts + [len(stream)]
            chunks = [stream[a:b] for a, b in zip(bounds, bounds[1:])]
            assert feed(FrameExtractor(), chunks) == [image]

    def test_marker_split_across_chunks(self, sample_jpeg):
        # FF | D8 ... FF | D9
        chunks = [sample_jpeg[:1], sample_jpeg[1:-1], sample_jpeg[-1:]]
        assert feed(FrameExtractor(), chunks) == [sample_jpeg]

    def test_consecutive_frames_small_chunks(self, make_jpeg):
        images = [make_jpeg(20, seed=i) for i in range(3)]
        stream = b"".join(images)
        chunks = [stream[i:i + 7] for i in range(0, len(stream), 7)]

        assert feed(FrameExtractor(), chunks) == images


class TestOneFramePerCall:
    """At most one frame is resolved per ingest call."""

    def test_second_frame_waits_for_next_call(self, make_jpeg):
        first, second = make_jpeg(10), make_jpeg(10, seed=5)
        extractor = FrameExtractor()

        assert feed(extractor, [first + second]) == [first]
        assert extractor.pending == len(second)
        assert feed(extractor, [b""]) == [second]

    def test_end_marker_before_start_delays_emission(self, sample_jpeg):
        extractor = FrameExtractor()

        # Stray FF D9 ahead of the image: the first end marker precedes
        # the start marker, so nothing is emitted yet
        assert extractor.ingest(b"\xff\xd9" + sample_jpeg) == []
        assert extractor.pending == len(sample_jpeg)
        assert [f.data for f in extractor.ingest(b"")] == [sample_jpeg]


class TestAccumulatorCaps:
    """Safety valves for malformed input."""

    def test_garbage_at_cap_is_kept(self):
        extractor = FrameExtractor()
        extractor.ingest(b"\x00" * MAX_GARBAGE_BYTES)

        assert extractor.pending == MAX_GARBAGE_BYTES
        assert extractor.garbage_resets == 0

    def test_garbage_over_cap_is_cleared(self, sample_jpeg):
        extractor = FrameExtractor()
        extractor.ingest(b"\x00" * MAX_GARBAGE_BYTES)
        extractor.ingest(b"\x00")

        assert extractor.pending == 0
        assert extractor.garbage_resets == 1

        # Next call starts from an empty accumulator
        assert feed(extractor, [sample_jpeg]) == [sample_jpeg]
        assert extractor.pending == 0

    def test_partial_frame_at_cap_is_kept(self):
        extractor = FrameExtractor()
        extractor.ingest(b"\xff\xd8" + b"\x00" * (MAX_PARTIAL_FRAME_BYTES - 2))

        assert extractor.pending == MAX_PARTIAL_FRAME_BYTES
        assert extractor.partial_resets == 0

    def test_partial_frame_over_cap_is_cleared(self, sample_jpeg):
        extractor = FrameExtractor()
        extractor.ingest(b"\xff\xd8")
        for _ in range(6):
            extractor.ingest(b"\x00" * (100 * 1024))

        assert extractor.partial_resets == 1
        assert extractor.pending < MAX_PARTIAL_FRAME_BYTES

        # The orphaned end of the oversized image is garbage, the next
        # image comes through intact
        extractor.reset()
        assert feed(extractor, [b"\x00\xff\xd9" + sample_jpeg, b""]) == [sample_jpeg]

    def test_partial_frame_cap_applies_with_start_seen(self):
        extractor = FrameExtractor(max_partial_bytes=16, max_garbage_bytes=1024)
        extractor.ingest(b"\xff\xd8" + b"\x00" * 20)

        assert extractor.pending == 0
        assert extractor.partial_resets == 1

    @pytest.mark.parametrize("size", [1, 64, 4096])
    def test_metrics(self, size):
        extractor = FrameExtractor()
        extractor.ingest(b"\x00" * size)

        assert extractor.metrics() == {
            "pending_bytes": size,
            "frames_emitted": 0,
            "partial_resets": 0,
            "garbage_resets": 0,
        }
