"""PacBio V1 frame codec for IPD and pulse-width features."""

# Third party modules
import numpy as np

# 256 representable frame counts: 0-63 step 1, 64-190 step 2, 192-444 step 4, 448-952 step 8
FRAME_POINTS: np.ndarray = np.concatenate(
    [
        np.arange(64),
        64 + 2 * np.arange(64),
        192 + 4 * np.arange(64),
        448 + 8 * np.arange(64),
    ]
).astype(np.uint16)

MAX_FRAMES = int(FRAME_POINTS[-1])


def build_frame_to_code() -> np.ndarray:
    """Lookup table from every frame count in [0, 952] to its 8-bit code.

    A count between two code points goes to the lower one below their
    midpoint and to the upper one from the midpoint on.
    """
    table = np.zeros(MAX_FRAMES + 1, dtype=np.uint8)
    for code in range(len(FRAME_POINTS) - 1):
        lower = int(FRAME_POINTS[code])
        upper = int(FRAME_POINTS[code + 1])
        if upper > lower + 1:
            middle = (lower + upper) // 2
            table[lower:middle] = code
            table[middle:upper] = code + 1
        else:
            table[lower] = code
    table[MAX_FRAMES] = len(FRAME_POINTS) - 1
    return table


FRAME_TO_CODE: np.ndarray = build_frame_to_code()


def encode_frames_v1(frames) -> np.ndarray:
    """Encode raw frame counts to 8-bit codes.

    Values between two code points round to the nearer one, ties going up.
    Values above 952 saturate.
    """
    frames = np.clip(np.asarray(frames, dtype=np.int64), 0, MAX_FRAMES)
    return FRAME_TO_CODE[frames]


def decode_frames_v1(codes) -> np.ndarray:
    """Decode 8-bit codes back to frame counts."""
    return FRAME_POINTS[np.asarray(codes, dtype=np.uint8)]
