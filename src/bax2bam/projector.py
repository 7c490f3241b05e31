"""Slice raw per-ZMW reads into the records written for each read type."""

from typing import Optional

# Third party modules
import numpy as np

from bax2bam.intervals import LocalContextFlags, ScrapRegionType
from bax2bam.readgroup import BaseFeature, ReadType

# Read types whose records carry the ZMW's HQ-region SNR (sn tag)
SNR_READ_TYPES = {
    ReadType.SUBREAD,
    ReadType.HQREGION,
    ReadType.SCRAP,
    ReadType.POLYMERASE,
}


class ZmwRecord:
    """One polymerase (or CCS) read, as produced by the legacy file reader.

    Per-base feature arrays have the same length as the sequence.
    """

    def __init__(
        self,
        movie_name: str,
        hole_number: int,
        sequence: str,
        features: Optional[dict[BaseFeature, np.ndarray]] = None,
        hq_snr: Optional[tuple[float, float, float, float]] = None,
        qualities: Optional[np.ndarray] = None,
        num_passes: int = 1,
        read_score: Optional[float] = None,
    ):
        self.movie_name = movie_name
        self.hole_number = int(hole_number)
        self.sequence = sequence
        self.features = dict(features or {})
        self.hq_snr = hq_snr
        self.qualities = qualities
        self.num_passes = int(num_passes)
        self.read_score = read_score

        for feature, values in self.features.items():
            if len(values) != len(sequence):
                raise ValueError(
                    f"ZMW {self.hole_number}: {feature.description_name} has {len(values)} values for {len(sequence)} bases"
                )
        if qualities is not None and len(qualities) != len(sequence):
            raise ValueError(
                f"ZMW {self.hole_number}: {len(qualities)} quality values for {len(sequence)} bases"
            )

    def __len__(self) -> int:
        return len(self.sequence)


class EmittedRecord:
    """A record ready for a BAM sink. Query coordinates are None for CCS reads."""

    def __init__(
        self,
        name: str,
        read_type: ReadType,
        hole_number: int,
        sequence: str,
        query_start: Optional[int] = None,
        query_end: Optional[int] = None,
        features: Optional[dict[BaseFeature, np.ndarray]] = None,
        qualities: Optional[np.ndarray] = None,
        snr: Optional[tuple[float, float, float, float]] = None,
        local_context: Optional[LocalContextFlags] = None,
        num_passes: int = 1,
        read_score: Optional[float] = None,
        scrap_region_type: Optional[ScrapRegionType] = None,
    ):
        self.name = name
        self.read_type = read_type
        self.hole_number = hole_number
        self.sequence = sequence
        self.query_start = query_start
        self.query_end = query_end
        self.features = features or {}
        self.qualities = qualities
        self.snr = snr
        self.local_context = local_context
        self.num_passes = num_passes
        self.read_score = read_score
        self.scrap_region_type = scrap_region_type

    def __repr__(self) -> str:
        return f"EmittedRecord({self.name!r}, {self.read_type.value})"


def record_name(movie_name: str, hole_number: int, start: int, end: int) -> str:
    """<movie>/<holeNumber>/<start>_<end>"""
    return f"{movie_name}/{hole_number}/{start}_{end}"


def project_record(
    zmw: ZmwRecord,
    start: int,
    end: int,
    read_type: ReadType,
    features: tuple[BaseFeature, ...] = (),
    local_context: Optional[LocalContextFlags] = None,
    scrap_region_type: Optional[ScrapRegionType] = None,
) -> EmittedRecord:
    """Slice a polymerase read to [start, end) for a given read type.

    Args
    ----------
    zmw : ZmwRecord
        The source read.
    start, end : int
        The half-open interval to keep.
    read_type : ReadType
        The read type of the target stream.
    features : tuple[BaseFeature, ...]
        Features enabled for the read type; each must exist on the ZMW.
    local_context : LocalContextFlags, optional
        Kept for SUBREAD records only.
    scrap_region_type : ScrapRegionType, optional
        Kept for SCRAP records only.

    Returns
    -------
    EmittedRecord

    Raises
    -------
    ValueError
        If the interval lies outside the read or is empty.
    KeyError
        If an enabled feature is missing from the ZMW.
    """
    if not 0 <= start < end <= len(zmw):
        raise ValueError(
            f"ZMW {zmw.hole_number}: interval [{start}, {end}) is outside read of length {len(zmw)}"
        )

    return EmittedRecord(
        name=record_name(zmw.movie_name, zmw.hole_number, start, end),
        read_type=read_type,
        hole_number=zmw.hole_number,
        sequence=zmw.sequence[start:end],
        query_start=start,
        query_end=end,
        features={feature: zmw.features[feature][start:end] for feature in features},
        snr=zmw.hq_snr if read_type in SNR_READ_TYPES else None,
        local_context=local_context if read_type == ReadType.SUBREAD else None,
        num_passes=1,
        read_score=zmw.read_score,
        scrap_region_type=scrap_region_type if read_type == ReadType.SCRAP else None,
    )


def project_ccs_record(
    zmw: ZmwRecord, features: tuple[BaseFeature, ...] = ()
) -> EmittedRecord:
    """Build the record of a consensus read: whole sequence, qualities and pass count."""
    return EmittedRecord(
        name=f"{zmw.movie_name}/{zmw.hole_number}/ccs",
        read_type=ReadType.CCS,
        hole_number=zmw.hole_number,
        sequence=zmw.sequence,
        features={feature: zmw.features[feature] for feature in features},
        qualities=zmw.qualities,
        num_passes=zmw.num_passes,
        read_score=zmw.read_score,
    )
