"""Read polymerase and CCS reads from legacy bax.h5 / ccs.h5 files."""

import os
from typing import Iterator, Optional

# Third party modules
import h5py
import numpy as np

from bax2bam.projector import ZmwRecord
from bax2bam.readgroup import BaseFeature, RunMetadata
from bax2bam.regions import (
    DEFAULT_REGION_TYPES,
    REGION_TYPE_NAMES,
    RegionAnnotation,
    RegionTable,
    RegionTableFormatError,
)

BASECALLS_GROUP = "PulseData/BaseCalls"
CCS_BASECALLS_GROUP = "PulseData/ConsensusBaseCalls"
REGIONS_DATASET = "PulseData/Regions"
RUN_INFO_GROUP = "ScanData/RunInfo"
ACQ_PARAMS_GROUP = "ScanData/AcqParams"

# Dataset holding each feature, relative to the base-call group
FEATURE_DATASETS: dict[BaseFeature, str] = {
    BaseFeature.DELETION_QV: "DeletionQV",
    BaseFeature.DELETION_TAG: "DeletionTag",
    BaseFeature.INSERTION_QV: "InsertionQV",
    BaseFeature.MERGE_QV: "MergeQV",
    BaseFeature.SUBSTITUTION_QV: "SubstitutionQV",
    BaseFeature.SUBSTITUTION_TAG: "SubstitutionTag",
    BaseFeature.IPD: "PreBaseFrames",
    BaseFeature.PULSE_WIDTH: "WidthInFrames",
}


def decode_attr(value) -> str:
    """Decode an HDF5 attribute value to a string."""
    if isinstance(value, np.ndarray):
        if value.size == 0:
            return ""
        value = value.flat[0]
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def movie_name_from_path(bax_file: str) -> str:
    """m1234_..._s1_p0.1.bax.h5 -> m1234_..._s1_p0"""
    return os.path.basename(bax_file).split(".")[0]


class BaxReader:
    """Sequential reader over the ZMWs of a bax.h5 (or ccs.h5) file.

    Use as a context manager, or call close() when done.
    """

    def __init__(
        self,
        bax_file: str,
        features: Optional[set[BaseFeature]] = None,
        ccs: bool = False,
    ):
        """Open a legacy base-call file.

        Args
        ----------
        bax_file : str
            Path to the .bax.h5 or .ccs.h5 file.
        features : set[BaseFeature], optional
            Features to load (None loads every feature the file has).
        ccs : bool, optional
            Read consensus reads instead of polymerase reads.

        Raises
        -------
        FileNotFoundError
            If the file cannot be read.
        ValueError
            If the file has no base-call group for the requested read kind, or
            the group lacks the sequence or ZMW index datasets.
        """
        if not os.access(bax_file, os.R_OK):
            raise FileNotFoundError(
                "Cannot read bax file: " + os.path.abspath(bax_file)
            )

        self.bax_file = bax_file
        self.ccs = ccs
        self._h5 = h5py.File(bax_file, "r")

        group_name = CCS_BASECALLS_GROUP if ccs else BASECALLS_GROUP
        if group_name not in self._h5:
            self._h5.close()
            raise ValueError(f"No {group_name} group found in: {bax_file}")
        self._calls = self._h5[group_name]

        required = ["Basecall", "ZMW/HoleNumber", "ZMW/NumEvent"]
        if ccs:
            required.append("QualityValue")
        missing = [name for name in required if name not in self._calls]
        if missing:
            self._h5.close()
            raise ValueError(
                f"Missing {', '.join(missing)} in {group_name} of: {bax_file}"
            )

        self.movie_name = self._read_movie_name()
        self.hole_numbers: np.ndarray = self._calls["ZMW/HoleNumber"][()]
        num_events = self._calls["ZMW/NumEvent"][()]
        self._offsets = np.concatenate(([0], np.cumsum(num_events, dtype=np.int64)))

        available = self.available_features()
        self.features: set[BaseFeature] = (
            available if features is None else available & set(features)
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def close(self) -> None:
        self._h5.close()

    @property
    def num_zmws(self) -> int:
        return len(self.hole_numbers)

    def _read_movie_name(self) -> str:
        if RUN_INFO_GROUP in self._h5:
            name = decode_attr(self._h5[RUN_INFO_GROUP].attrs.get("MovieName", ""))
            if name:
                return name
        return movie_name_from_path(self.bax_file)

    def available_features(self) -> set[BaseFeature]:
        """Features with a dataset in this file."""
        return {
            feature
            for feature, dataset in FEATURE_DATASETS.items()
            if dataset in self._calls
        }

    def run_metadata(self) -> RunMetadata:
        """Binding/sequencing kit, basecaller version and frame rate ("" when absent)."""
        binding_kit = ""
        sequencing_kit = ""
        frame_rate = ""
        basecaller_version = ""

        if RUN_INFO_GROUP in self._h5:
            run_info = self._h5[RUN_INFO_GROUP].attrs
            binding_kit = decode_attr(run_info.get("BindingKit", ""))
            sequencing_kit = decode_attr(run_info.get("SequencingKit", ""))

        if ACQ_PARAMS_GROUP in self._h5:
            frame_rate = decode_attr(
                self._h5[ACQ_PARAMS_GROUP].attrs.get("FrameRate", "")
            )

        # The basecaller version lives on the raw base calls, also for ccs.h5 files
        if BASECALLS_GROUP in self._h5:
            basecaller_version = decode_attr(
                self._h5[BASECALLS_GROUP].attrs.get("ChangeListID", "")
            )

        return RunMetadata(
            binding_kit=binding_kit,
            sequencing_kit=sequencing_kit,
            basecaller_version=basecaller_version,
            frame_rate_hz=frame_rate,
        )

    def records(self) -> Iterator[ZmwRecord]:
        """Yield one ZmwRecord per ZMW, in file order."""
        datasets = {
            feature: self._calls[FEATURE_DATASETS[feature]] for feature in self.features
        }
        basecalls = self._calls["Basecall"]
        qualities = self._calls["QualityValue"] if self.ccs else None

        hq_snr = None
        read_score = None
        num_passes = None
        if not self.ccs:
            if "ZMWMetrics/HQRegionSNR" in self._calls:
                hq_snr = self._calls["ZMWMetrics/HQRegionSNR"][()]
            if "ZMWMetrics/ReadScore" in self._calls:
                read_score = self._calls["ZMWMetrics/ReadScore"][()]
        elif "Passes/NumPasses" in self._calls:
            num_passes = self._calls["Passes/NumPasses"][()]

        for index, hole_number in enumerate(self.hole_numbers):
            start = int(self._offsets[index])
            end = int(self._offsets[index + 1])

            yield ZmwRecord(
                movie_name=self.movie_name,
                hole_number=int(hole_number),
                sequence=basecalls[start:end].tobytes().decode("ascii"),
                features={
                    feature: dataset[start:end] for feature, dataset in datasets.items()
                },
                hq_snr=(
                    tuple(float(snr) for snr in hq_snr[index])
                    if hq_snr is not None
                    else None
                ),
                qualities=qualities[start:end] if qualities is not None else None,
                num_passes=int(num_passes[index]) if num_passes is not None else 1,
                read_score=float(read_score[index]) if read_score is not None else None,
            )


def load_region_table(bax_file: str) -> RegionTable:
    """Load the Regions table of a bax.h5 file.

    Args
    ----------
    bax_file (str): Path to the .bax.h5 file.

    Returns
    ----------
    RegionTable: The per-ZMW region annotations.

    Raises
    ----------
    FileNotFoundError: If the file cannot be read.
    RegionTableFormatError: If the Regions dataset is missing or malformed.
    MalformedRegionTableError: If the rows violate ordering invariants.
    """
    if not os.access(bax_file, os.R_OK):
        raise FileNotFoundError("Cannot read bax file: " + os.path.abspath(bax_file))

    try:
        with h5py.File(bax_file, "r") as h5:
            if REGIONS_DATASET not in h5:
                raise RegionTableFormatError(
                    f"No {REGIONS_DATASET} table found in: {bax_file}"
                )
            dataset = h5[REGIONS_DATASET]
            rows = dataset[()]
            type_names = [
                decode_attr(name)
                for name in dataset.attrs.get("RegionTypes", DEFAULT_REGION_TYPES)
            ]
    except RegionTableFormatError:
        raise
    except OSError as exc:
        raise RegionTableFormatError(
            f"Cannot read {REGIONS_DATASET} from: {bax_file}"
        ) from exc

    if rows.size and (rows.ndim != 2 or rows.shape[1] < 4):
        raise RegionTableFormatError(
            f"Unexpected {REGIONS_DATASET} shape {rows.shape} in: {bax_file}"
        )

    # Map the file's type indices onto our RegionType (unknown types are ignored)
    type_lookup = {
        index: REGION_TYPE_NAMES[name]
        for index, name in enumerate(type_names)
        if name in REGION_TYPE_NAMES
    }

    annotations = []
    for row in rows:
        region_type = type_lookup.get(int(row[1]))
        if region_type is None:
            continue
        annotations.append(
            RegionAnnotation(
                hole_number=int(row[0]),
                region_type=region_type,
                start=int(row[2]),
                end=int(row[3]),
                score=int(row[4]) if len(row) > 4 else 0,
            )
        )

    return RegionTable(annotations)
