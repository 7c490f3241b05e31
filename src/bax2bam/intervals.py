"""Partition a ZMW's HQ region into subread and scrap intervals."""

from enum import Enum, IntFlag
from typing import NamedTuple, Optional

from bax2bam.regions import RegionTable


class LocalContextFlags(IntFlag):
    """Adjacency of a subread to adapters (values match the BAM cx tag)."""

    NO_LOCAL_CONTEXT = 0
    ADAPTER_BEFORE = 1
    ADAPTER_AFTER = 2


class ScrapRegionType(Enum):
    """Why a piece of a polymerase read went to the scrap stream (BAM sc tag)."""

    ADAPTER = "A"
    LQREGION = "L"


class SubreadInterval(NamedTuple):
    """Half-open [start, end) range of a subread within its polymerase read."""

    start: int
    end: int
    local_context: LocalContextFlags = LocalContextFlags.NO_LOCAL_CONTEXT


class ScrapInterval(NamedTuple):
    """Half-open [start, end) range of scrap material within its polymerase read."""

    start: int
    end: int
    region_type: ScrapRegionType


def compute_subread_intervals(
    hole_number: int, region_table: RegionTable, read_length: Optional[int] = None
) -> list[SubreadInterval]:
    """Compute the subread intervals of a ZMW from its region annotations.

    A ZMW without an HQ region yields no intervals. When read_length is given
    the HQ region is first clamped to [0, read_length).
    """
    hq_interval = clamp_interval(region_table.hq_interval(hole_number), read_length)
    if hq_interval is None:
        return []
    return partition_hq_region(hq_interval, region_table.adapter_intervals(hole_number))


def clamp_interval(
    interval: Optional[tuple[int, int]], read_length: Optional[int]
) -> Optional[tuple[int, int]]:
    """Clamp a [start, end) interval to a read of the given length."""
    if interval is None or read_length is None:
        return interval
    return (min(interval[0], read_length), min(interval[1], read_length))


def partition_hq_region(
    hq_interval: tuple[int, int], adapters: list[tuple[int, int]]
) -> list[SubreadInterval]:
    """Split an HQ interval at adapter boundaries.

    Adapters must already be sorted by start; they are walked in the given
    order. Adapters ending before the HQ start are skipped and the walk stops
    at the first adapter starting after the HQ end.

    Args
    ----------
    hq_interval : tuple[int, int]
        The [start, end) HQ interval.
    adapters : list[tuple[int, int]]
        The [start, end) adapter intervals, ascending by start.

    Returns
    -------
    list[SubreadInterval]
        Non-empty intervals in ascending order, each flagged with the
        adapters it borders.
    """
    hq_start, hq_end = hq_interval
    if hq_end <= hq_start:
        return []

    candidates = []
    region_start = hq_start
    previous_adapter_end = None
    for adapter_start, adapter_end in adapters:
        if adapter_end < hq_start:
            continue
        if adapter_start > hq_end:
            break

        if previous_adapter_end is not None:
            candidates.append(
                SubreadInterval(
                    previous_adapter_end,
                    adapter_start,
                    LocalContextFlags.ADAPTER_BEFORE | LocalContextFlags.ADAPTER_AFTER,
                )
            )
        else:
            candidates.append(
                SubreadInterval(
                    region_start, adapter_start, LocalContextFlags.ADAPTER_AFTER
                )
            )

        previous_adapter_end = adapter_end
        region_start = adapter_end

    if previous_adapter_end is not None:
        candidates.append(
            SubreadInterval(
                previous_adapter_end, hq_end, LocalContextFlags.ADAPTER_BEFORE
            )
        )
    else:
        candidates.append(SubreadInterval(region_start, hq_end))

    # Zero-length (and inverted, from overlapping adapters) intervals are never emitted
    return [interval for interval in candidates if interval.start < interval.end]


def complement_intervals(
    intervals: list[SubreadInterval],
    read_length: int,
    hq_interval: Optional[tuple[int, int]],
) -> list[ScrapInterval]:
    """Return the parts of [0, read_length) not covered by the given intervals.

    Gaps are split at the HQ boundaries: pieces inside the HQ region are
    adapters, pieces outside it are low-quality sequence.
    """
    hq_start, hq_end = hq_interval if hq_interval is not None else (0, 0)

    scraps = []
    cursor = 0
    for interval in list(intervals) + [SubreadInterval(read_length, read_length)]:
        if cursor < interval.start:
            scraps.extend(_split_gap(cursor, interval.start, hq_start, hq_end))
        cursor = max(cursor, interval.end)
    return scraps


def _split_gap(
    gap_start: int, gap_end: int, hq_start: int, hq_end: int
) -> list[ScrapInterval]:
    pieces = [
        ScrapInterval(gap_start, min(gap_end, hq_start), ScrapRegionType.LQREGION),
        ScrapInterval(
            max(gap_start, hq_start), min(gap_end, hq_end), ScrapRegionType.ADAPTER
        ),
        ScrapInterval(max(gap_start, hq_end), gap_end, ScrapRegionType.LQREGION),
    ]
    return [piece for piece in pieces if piece.start < piece.end]
