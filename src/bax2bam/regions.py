"""Stores region annotations (HQ region, adapters, inserts) for each ZMW."""

from enum import IntEnum
from typing import NamedTuple, Optional


class RegionTableFormatError(IOError):
    """The Regions table is missing or cannot be parsed."""


class MalformedRegionTableError(ValueError):
    """The Regions table violates ordering or interval invariants."""


class RegionType(IntEnum):
    """Region types, ordered as the legacy files enumerate them."""

    ADAPTER = 0
    INSERT = 1
    HQREGION = 2


# Names used by the RegionTypes attribute of /PulseData/Regions
REGION_TYPE_NAMES: dict[str, RegionType] = {
    "Adapter": RegionType.ADAPTER,
    "Insert": RegionType.INSERT,
    "HQRegion": RegionType.HQREGION,
}

# Used when the Regions dataset carries no RegionTypes attribute
DEFAULT_REGION_TYPES = ["Adapter", "Insert", "HQRegion"]


class RegionAnnotation(NamedTuple):
    """One row of the Regions table."""

    hole_number: int
    region_type: RegionType
    start: int
    end: int
    score: int = 0

    @property
    def sort_key(self) -> tuple[int, int, int]:
        """Ordering key: (hole number, region type, start)."""
        return (self.hole_number, int(self.region_type), self.start)


class RegionTable:
    """Per-ZMW lookup of region annotations.

    The table is validated once on construction and never mutated afterwards.
    Lookups for unknown hole numbers or degenerate regions return empty results
    rather than raising.
    """

    def __init__(self, annotations):
        """Build the table from an iterable of RegionAnnotation rows.

        Args
        ----------
        annotations : Iterable[RegionAnnotation]
            Rows in source order.

        Raises
        -------
        MalformedRegionTableError
            If an annotation ends before it starts, a ZMW has more than one
            HQRegion, or a ZMW's adapters are not sorted by start.
        """
        self._regions: dict[int, list[RegionAnnotation]] = {}
        for annotation in annotations:
            self._regions.setdefault(annotation.hole_number, []).append(annotation)

        for hole_number, rows in self._regions.items():
            validate_zmw_regions(hole_number, rows)
            # Stable, so adapters with equal starts keep their source order
            rows.sort(key=lambda row: row.sort_key)

    def __len__(self) -> int:
        """Number of ZMWs with at least one annotation."""
        return len(self._regions)

    def annotations(self, hole_number: int) -> list[RegionAnnotation]:
        """All annotations of a ZMW, ordered by (region type, start)."""
        return list(self._regions.get(hole_number, []))

    def hq_region(self, hole_number: int) -> Optional[RegionAnnotation]:
        """The HQRegion row of a ZMW, or None if there is none."""
        for annotation in self._regions.get(hole_number, []):
            if annotation.region_type == RegionType.HQREGION:
                return annotation
        return None

    def hq_interval(self, hole_number: int) -> Optional[tuple[int, int]]:
        """Return the [start, end) HQ interval of a ZMW.

        Args
        ----------
        hole_number : int
            The ZMW hole number.

        Returns
        -------
        tuple or None
            (start, end), or None if the ZMW has no HQRegion row or the
            region is empty.
        """
        annotation = self.hq_region(hole_number)
        if annotation is None or annotation.end <= annotation.start:
            return None
        return (annotation.start, annotation.end)

    def adapter_intervals(self, hole_number: int) -> list[tuple[int, int]]:
        """Return the [start, end) adapter intervals of a ZMW, ascending by start.

        Zero-length adapters are omitted. Unknown hole numbers give an empty list.
        """
        return [
            (annotation.start, annotation.end)
            for annotation in self._regions.get(hole_number, [])
            if annotation.region_type == RegionType.ADAPTER
            and annotation.start < annotation.end
        ]


def validate_zmw_regions(hole_number: int, rows: list[RegionAnnotation]) -> None:
    """Check the invariants of one ZMW's rows (in source order).

    Raises
    -------
    MalformedRegionTableError
        On any violation. Nothing is corrected.
    """
    hq_rows = 0
    last_adapter_start = None
    for row in rows:
        if row.end < row.start:
            raise MalformedRegionTableError(
                f"ZMW {hole_number}: {row.region_type.name} region ends before it starts ({row.start}, {row.end})"
            )
        if row.region_type == RegionType.HQREGION:
            hq_rows += 1
        elif row.region_type == RegionType.ADAPTER:
            if last_adapter_start is not None and row.start < last_adapter_start:
                raise MalformedRegionTableError(
                    f"ZMW {hole_number}: adapters are not sorted by start ({last_adapter_start} then {row.start})"
                )
            last_adapter_start = row.start

    if hq_rows > 1:
        raise MalformedRegionTableError(
            f"ZMW {hole_number}: found {hq_rows} HQRegion annotations, expected at most one"
        )


