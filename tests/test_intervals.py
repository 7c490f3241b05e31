"""Test cases for subread and scrap interval computation."""

from bax2bam.intervals import (
    LocalContextFlags,
    ScrapInterval,
    ScrapRegionType,
    SubreadInterval,
    complement_intervals,
    compute_subread_intervals,
    partition_hq_region,
)
from bax2bam.regions import RegionAnnotation, RegionTable, RegionType

BEFORE = LocalContextFlags.ADAPTER_BEFORE
AFTER = LocalContextFlags.ADAPTER_AFTER
NONE = LocalContextFlags.NO_LOCAL_CONTEXT


def test_two_adapters_inside_hq_region() -> None:
    """Two adapters split the HQ region into three subreads."""
    assert partition_hq_region((50, 250), [(100, 120), (180, 190)]) == [
        SubreadInterval(50, 100, AFTER),
        SubreadInterval(120, 180, BEFORE | AFTER),
        SubreadInterval(190, 250, BEFORE),
    ]


def test_no_adapters() -> None:
    """Without adapters the whole HQ region is one subread."""
    assert partition_hq_region((0, 200), []) == [SubreadInterval(0, 200, NONE)]


def test_empty_hq_region() -> None:
    """An empty HQ region yields no subreads."""
    assert partition_hq_region((40, 40), [(10, 20)]) == []


def test_adapter_before_hq_region_is_skipped() -> None:
    """Adapters ending before the HQ region are ignored."""
    assert partition_hq_region((10, 140), [(0, 5), (60, 70)]) == [
        SubreadInterval(10, 60, AFTER),
        SubreadInterval(70, 140, BEFORE),
    ]


def test_adapters_after_hq_region_stop_the_walk() -> None:
    """Adapters past the HQ region end the partition."""
    assert partition_hq_region((0, 100), [(40, 50), (150, 160), (170, 180)]) == [
        SubreadInterval(0, 40, AFTER),
        SubreadInterval(50, 100, BEFORE),
    ]


def test_adjacent_adapters_give_no_empty_subread() -> None:
    """Touching adapters do not produce a zero-length subread."""
    assert partition_hq_region((10, 140), [(60, 70), (70, 80)]) == [
        SubreadInterval(10, 60, AFTER),
        SubreadInterval(80, 140, BEFORE),
    ]


def test_adapter_at_hq_start() -> None:
    """An adapter starting at the HQ start leaves no leading subread."""
    assert partition_hq_region((10, 100), [(10, 20)]) == [
        SubreadInterval(20, 100, BEFORE),
    ]


def test_adapter_straddling_hq_end() -> None:
    """The trailing interval is dropped once the adapter passes the HQ end."""
    assert partition_hq_region((0, 100), [(90, 110)]) == [
        SubreadInterval(0, 90, AFTER),
    ]


def test_intervals_are_ordered_and_disjoint() -> None:
    """Subreads come out sorted and do not overlap."""
    hq_interval = (5, 500)
    adapters = [(0, 3), (40, 60), (61, 62), (200, 230), (230, 240), (499, 520)]

    intervals = partition_hq_region(hq_interval, adapters)

    for interval in intervals:
        assert hq_interval[0] <= interval.start < interval.end <= hq_interval[1]
        for start, end in adapters:
            assert interval.end <= start or interval.start >= end
    for first, second in zip(intervals, intervals[1:]):
        assert first.end <= second.start


def test_compute_subread_intervals_from_table() -> None:
    """Test compute_subread_intervals on a region table."""
    table = RegionTable(
        [
            RegionAnnotation(4, RegionType.ADAPTER, 100, 120),
            RegionAnnotation(4, RegionType.HQREGION, 50, 250),
            RegionAnnotation(5, RegionType.HQREGION, 0, 0),
        ]
    )

    assert compute_subread_intervals(4, table) == [
        SubreadInterval(50, 100, AFTER),
        SubreadInterval(120, 250, BEFORE),
    ]
    assert compute_subread_intervals(5, table) == []
    assert compute_subread_intervals(6, table) == []


def test_complement_splits_at_hq_bounds() -> None:
    """Gaps are split at the HQ bounds and typed by side."""
    intervals = partition_hq_region((50, 250), [(100, 120), (180, 190)])

    assert complement_intervals(intervals, 300, (50, 250)) == [
        ScrapInterval(0, 50, ScrapRegionType.LQREGION),
        ScrapInterval(100, 120, ScrapRegionType.ADAPTER),
        ScrapInterval(180, 190, ScrapRegionType.ADAPTER),
        ScrapInterval(250, 300, ScrapRegionType.LQREGION),
    ]


def test_complement_of_full_read_is_empty() -> None:
    """A read fully covered by subreads has no scraps."""
    assert complement_intervals([SubreadInterval(0, 200)], 200, (0, 200)) == []


def test_complement_gap_crossing_hq_start() -> None:
    """A gap covering the HQ start is split into low-quality and adapter pieces."""
    intervals = [SubreadInterval(20, 100, BEFORE)]

    assert complement_intervals(intervals, 100, (10, 100)) == [
        ScrapInterval(0, 10, ScrapRegionType.LQREGION),
        ScrapInterval(10, 20, ScrapRegionType.ADAPTER),
    ]


def test_complement_covers_read_exactly() -> None:
    """Subreads and scraps tile the read."""
    intervals = partition_hq_region((10, 140), [(0, 5), (60, 70), (70, 80)])
    scraps = complement_intervals(intervals, 150, (10, 140))

    pieces = sorted(
        [(i.start, i.end) for i in intervals] + [(s.start, s.end) for s in scraps]
    )
    assert pieces[0][0] == 0
    assert pieces[-1][1] == 150
    for first, second in zip(pieces, pieces[1:]):
        assert first[1] == second[0]
