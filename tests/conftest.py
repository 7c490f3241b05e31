"""Shared fixtures: small synthetic bax.h5 / ccs.h5 files written with h5py."""

import h5py
import numpy as np
import pytest
from click.testing import CliRunner

MOVIE_NAME = "m140905_042212_sidney_c100564852550000001823085912221377_s1_X0"
BINDING_KIT = "100356300"
SEQUENCING_KIT = "100356200"
BASECALLER_VERSION = "2.3.0.0.140018"
FRAME_RATE = 75.0

BASES = np.frombuffer(b"ACGT", dtype=np.uint8)

# hole number -> (read length, HQ region, adapters)
POLYMERASE_ZMWS = {
    0: (300, (50, 250), [(100, 120), (180, 190)]),
    1: (120, (0, 0), []),
    2: (200, (0, 200), []),
    3: (150, (10, 140), [(0, 5), (60, 70), (70, 80)]),
}

# hole number -> (read length, number of passes)
CCS_ZMWS = {
    0: (50, 5),
    1: (0, 0),
    2: (80, 3),
}


def make_sequence(hole_number: int, length: int) -> str:
    """Deterministic bases of a ZMW."""
    rng = np.random.default_rng(hole_number)
    return BASES[rng.integers(0, 4, size=length)].tobytes().decode("ascii")


def make_frames(hole_number: int, length: int) -> np.ndarray:
    """Deterministic frame counts, spanning every codec step and the saturation range."""
    rng = np.random.default_rng(1000 + hole_number)
    return rng.integers(0, 1200, size=length).astype(np.uint16)


def make_qvs(hole_number: int, length: int, offset: int = 0) -> np.ndarray:
    rng = np.random.default_rng(2000 + 10 * hole_number + offset)
    return rng.integers(0, 40, size=length).astype(np.uint8)


def _write_zmw_group(calls, zmws: dict, ccs: bool = False) -> None:
    """Write concatenated per-base datasets plus the ZMW index of a base-call group."""
    hole_numbers = np.array(sorted(zmws), dtype=np.uint32)
    lengths = np.array([zmws[hole][0] for hole in hole_numbers], dtype=np.int32)
    sequences = "".join(
        make_sequence(int(hole), int(length)) for hole, length in zip(hole_numbers, lengths)
    )

    calls.create_dataset(
        "Basecall", data=np.frombuffer(sequences.encode("ascii"), dtype=np.uint8)
    )
    for offset, name in enumerate(
        ("DeletionQV", "InsertionQV", "SubstitutionQV", "MergeQV", "QualityValue")
    ):
        if ccs and name == "MergeQV":
            continue
        calls.create_dataset(
            name,
            data=np.concatenate(
                [make_qvs(int(h), int(n), offset) for h, n in zip(hole_numbers, lengths)]
            ).astype(np.uint8),
        )

    if not ccs:
        calls.create_dataset(
            "DeletionTag",
            data=np.full(len(sequences), ord("N"), dtype=np.int8),
        )
        calls.create_dataset(
            "SubstitutionTag",
            data=np.frombuffer(sequences.encode("ascii"), dtype=np.int8),
        )
        frames = np.concatenate(
            [make_frames(int(h), int(n)) for h, n in zip(hole_numbers, lengths)]
        )
        calls.create_dataset("PreBaseFrames", data=frames)
        calls.create_dataset("WidthInFrames", data=(frames // 2).astype(np.uint16))

    calls.create_dataset("ZMW/HoleNumber", data=hole_numbers)
    calls.create_dataset("ZMW/NumEvent", data=lengths)

    if ccs:
        calls.create_dataset(
            "Passes/NumPasses",
            data=np.array([zmws[hole][1] for hole in hole_numbers], dtype=np.int32),
        )
    else:
        snr = np.array(
            [[4.0 + hole, 5.0 + hole, 6.0 + hole, 7.0 + hole] for hole in hole_numbers],
            dtype=np.float32,
        )
        calls.create_dataset("ZMWMetrics/HQRegionSNR", data=snr)
        calls.create_dataset(
            "ZMWMetrics/ReadScore",
            data=np.array([0.75 + 0.05 * hole for hole in hole_numbers], dtype=np.float32),
        )


def _write_run_info(h5, movie_name: str) -> None:
    run_info = h5.create_group("ScanData/RunInfo")
    run_info.attrs["MovieName"] = movie_name
    run_info.attrs["BindingKit"] = BINDING_KIT
    run_info.attrs["SequencingKit"] = SEQUENCING_KIT
    acq_params = h5.create_group("ScanData/AcqParams")
    acq_params.attrs["FrameRate"] = FRAME_RATE


def write_bax(path, zmws: dict = None, movie_name: str = MOVIE_NAME, regions=None) -> str:
    """Write a bax.h5 file holding the given polymerase ZMWs.

    Args
    ----------
    path: Output file.
    zmws (dict): hole number -> (length, hq region, adapters).
    movie_name (str): Stored in ScanData/RunInfo.
    regions (np.ndarray): Raw Regions rows; built from zmws when None.
    """
    if zmws is None:
        zmws = POLYMERASE_ZMWS

    with h5py.File(path, "w") as h5:
        calls = h5.create_group("PulseData/BaseCalls")
        calls.attrs["ChangeListID"] = BASECALLER_VERSION
        _write_zmw_group(calls, zmws)

        if regions is None:
            rows = []
            for hole in sorted(zmws):
                _, hq_region, adapters = zmws[hole]
                for start, end in adapters:
                    rows.append([hole, 0, start, end, 900])
                rows.append([hole, 2, hq_region[0], hq_region[1], 800])
            regions = np.array(rows, dtype=np.int32).reshape(-1, 5)
        dataset = h5.create_dataset("PulseData/Regions", data=regions)
        dataset.attrs["RegionTypes"] = ["Adapter", "Insert", "HQRegion"]

        _write_run_info(h5, movie_name)
    return str(path)


def write_ccs(path, zmws: dict = None, movie_name: str = MOVIE_NAME) -> str:
    """Write a ccs.h5 file holding the given consensus ZMWs (length, passes)."""
    if zmws is None:
        zmws = CCS_ZMWS

    with h5py.File(path, "w") as h5:
        # ccs.h5 files keep the basecaller version on the (empty) raw group
        raw_calls = h5.create_group("PulseData/BaseCalls")
        raw_calls.attrs["ChangeListID"] = BASECALLER_VERSION
        _write_zmw_group(h5.create_group("PulseData/ConsensusBaseCalls"), zmws, ccs=True)
        _write_run_info(h5, movie_name)
    return str(path)


@pytest.fixture
def runner() -> CliRunner:
    """Fixture for invoking command-line interfaces."""
    return CliRunner()


@pytest.fixture
def bax_file(tmp_path) -> str:
    return write_bax(tmp_path / f"{MOVIE_NAME}.1.bax.h5")


@pytest.fixture
def ccs_file(tmp_path) -> str:
    return write_ccs(tmp_path / f"{MOVIE_NAME}.1.ccs.h5")


@pytest.fixture
def multipart_movie(tmp_path) -> list:
    """Two parts of one movie, holes 0-1 and 2-3."""
    return [
        write_bax(
            tmp_path / f"{MOVIE_NAME}.1.bax.h5",
            {hole: POLYMERASE_ZMWS[hole] for hole in (0, 1)},
        ),
        write_bax(
            tmp_path / f"{MOVIE_NAME}.2.bax.h5",
            {hole: POLYMERASE_ZMWS[hole] for hole in (2, 3)},
        ),
    ]
