"""Test cases for the V1 frame codec."""

import numpy as np

from bax2bam.frames import FRAME_POINTS, MAX_FRAMES, decode_frames_v1, encode_frames_v1


def test_code_points() -> None:
    """The 256 code points follow the four step sizes."""
    assert len(FRAME_POINTS) == 256
    assert FRAME_POINTS[63] == 63
    assert FRAME_POINTS[64] == 64
    assert FRAME_POINTS[127] == 190
    assert FRAME_POINTS[128] == 192
    assert FRAME_POINTS[191] == 444
    assert FRAME_POINTS[192] == 448
    assert MAX_FRAMES == 952


def test_small_values_are_exact() -> None:
    """Counts below 64 are stored exactly."""
    frames = np.arange(64)

    np.testing.assert_array_equal(encode_frames_v1(frames), frames)


def test_values_round_to_nearer_code_point() -> None:
    """Counts between code points go up from the midpoint on."""
    codes = encode_frames_v1([64, 65, 191, 195, 446, 450, 455])

    np.testing.assert_array_equal(codes, [64, 65, 128, 129, 192, 192, 193])
    np.testing.assert_array_equal(
        decode_frames_v1(codes), [64, 66, 192, 196, 448, 448, 456]
    )


def test_large_values_saturate() -> None:
    """Counts from 952 up all encode to 255."""
    codes = encode_frames_v1([952, 953, 10000, 65535])

    assert codes.dtype == np.uint8
    np.testing.assert_array_equal(codes, [255, 255, 255, 255])


def test_code_points_survive_encoding() -> None:
    """Code points decode back to themselves."""
    np.testing.assert_array_equal(
        decode_frames_v1(encode_frames_v1(FRAME_POINTS)), FRAME_POINTS
    )
