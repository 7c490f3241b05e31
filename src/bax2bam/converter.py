"""Convert the ZMWs of one movie to primary and scrap BAM files."""

from enum import Enum
from typing import NamedTuple, Optional

# Third party modules
from tqdm import tqdm

from bax2bam.bax import BaxReader, load_region_table
from bax2bam.intervals import (
    ScrapRegionType,
    clamp_interval,
    complement_intervals,
    compute_subread_intervals,
)
from bax2bam.projector import (
    EmittedRecord,
    ZmwRecord,
    project_ccs_record,
    project_record,
)
from bax2bam.readgroup import (
    BaseFeature,
    ReadGroupInfo,
    ReadType,
    build_read_group,
)
from bax2bam.regions import RegionTable
from bax2bam.sink import BamSink


class ConversionMode(Enum):
    """Which read type goes to the primary BAM. Each mode fixes its sinks.

    Value: (primary read type, primary suffix, scrap suffix or None).
    """

    SUBREAD = (ReadType.SUBREAD, "subreads", "scraps")
    HQREGION = (ReadType.HQREGION, "hqregions", "lqregions")
    POLYMERASE = (ReadType.POLYMERASE, "polymerase", None)
    CCS = (ReadType.CCS, "ccs", None)

    @property
    def read_type(self) -> ReadType:
        return self.value[0]

    @property
    def primary_suffix(self) -> str:
        return self.value[1]

    @property
    def scrap_suffix(self) -> Optional[str]:
        return self.value[2]

    @property
    def has_scraps(self) -> bool:
        return self.scrap_suffix is not None

    @property
    def needs_regions(self) -> bool:
        return self in (ConversionMode.SUBREAD, ConversionMode.HQREGION)


class ConversionSettings:
    """Options for converting one movie."""

    def __init__(
        self,
        mode: ConversionMode = ConversionMode.SUBREAD,
        pulse_features: Optional[set[BaseFeature]] = None,
        lossless_frames: bool = False,
        hq_suffix_scrap: bool = False,
        program: Optional[dict] = None,
        verbose: bool = False,
    ):
        self.mode = mode
        self.pulse_features = pulse_features
        self.lossless_frames = lossless_frames
        self.hq_suffix_scrap = hq_suffix_scrap
        self.program = program
        self.verbose = verbose


class ZmwOutput(NamedTuple):
    """Records derived from one ZMW, each list ordered by start."""

    primary: list[EmittedRecord]
    scrap: list[EmittedRecord]


class ConversionResult(NamedTuple):
    movie_name: str
    primary_bam: str
    scrap_bam: Optional[str]
    zmws_processed: int
    primary_records: int
    scrap_records: int


def output_paths(output_prefix: str, mode: ConversionMode) -> tuple[str, Optional[str]]:
    """Primary and scrap BAM paths for a prefix, e.g. prefix.subreads.bam, prefix.scraps.bam."""
    primary_bam = f"{output_prefix}.{mode.primary_suffix}.bam"
    scrap_bam = f"{output_prefix}.{mode.scrap_suffix}.bam" if mode.has_scraps else None
    return primary_bam, scrap_bam


def emit_polymerase(zmw: ZmwRecord, primary_rg: ReadGroupInfo) -> ZmwOutput:
    """The whole polymerase read, [0, length)."""
    if len(zmw) == 0:
        return ZmwOutput([], [])
    return ZmwOutput(
        [project_record(zmw, 0, len(zmw), ReadType.POLYMERASE, primary_rg.features)],
        [],
    )


def emit_ccs(zmw: ZmwRecord, primary_rg: ReadGroupInfo) -> ZmwOutput:
    """The consensus read; ZMWs without a consensus sequence are skipped."""
    if len(zmw) == 0:
        return ZmwOutput([], [])
    return ZmwOutput([project_ccs_record(zmw, primary_rg.features)], [])


def emit_hqregion(
    zmw: ZmwRecord,
    region_table: RegionTable,
    primary_rg: ReadGroupInfo,
    scrap_rg: ReadGroupInfo,
    hq_suffix_scrap: bool = False,
) -> ZmwOutput:
    """The HQ interval to the primary stream and the low-quality prefix to scraps.

    Without a usable HQ region the whole read is scrap. The [hqEnd, length)
    suffix is only written when hq_suffix_scrap is set.
    """
    length = len(zmw)
    # Region tables can run past the last base
    hq_interval = clamp_interval(region_table.hq_interval(zmw.hole_number), length)
    hq_start, hq_end = hq_interval if hq_interval is not None else (length, length)

    primary = []
    scrap = []
    if hq_start < hq_end:
        primary.append(
            project_record(zmw, hq_start, hq_end, ReadType.HQREGION, primary_rg.features)
        )

    scrap_intervals = [(0, hq_start)]
    if hq_suffix_scrap and hq_interval is not None:
        scrap_intervals.append((hq_end, length))
    for start, end in scrap_intervals:
        if start < end:
            scrap.append(
                project_record(
                    zmw,
                    start,
                    end,
                    ReadType.SCRAP,
                    scrap_rg.features,
                    scrap_region_type=ScrapRegionType.LQREGION,
                )
            )
    return ZmwOutput(primary, scrap)


def emit_subreads(
    zmw: ZmwRecord,
    region_table: RegionTable,
    primary_rg: ReadGroupInfo,
    scrap_rg: ReadGroupInfo,
) -> ZmwOutput:
    """One record per subread interval; the complement of [0, length) goes to scraps.

    A ZMW without subread intervals contributes nothing to either stream.
    """
    length = len(zmw)
    intervals = compute_subread_intervals(zmw.hole_number, region_table, length)
    if not intervals:
        return ZmwOutput([], [])

    primary = [
        project_record(
            zmw,
            interval.start,
            interval.end,
            ReadType.SUBREAD,
            primary_rg.features,
            local_context=interval.local_context,
        )
        for interval in intervals
    ]
    scrap = [
        project_record(
            zmw,
            piece.start,
            piece.end,
            ReadType.SCRAP,
            scrap_rg.features,
            scrap_region_type=piece.region_type,
        )
        for piece in complement_intervals(
            intervals,
            length,
            clamp_interval(region_table.hq_interval(zmw.hole_number), length),
        )
    ]
    return ZmwOutput(primary, scrap)


def emit_zmw(
    zmw: ZmwRecord,
    settings: ConversionSettings,
    region_table: Optional[RegionTable],
    primary_rg: ReadGroupInfo,
    scrap_rg: Optional[ReadGroupInfo],
) -> ZmwOutput:
    """Dispatch one ZMW to the emitter of the conversion mode."""
    mode = settings.mode
    if mode == ConversionMode.CCS:
        return emit_ccs(zmw, primary_rg)
    if mode == ConversionMode.POLYMERASE:
        return emit_polymerase(zmw, primary_rg)
    if mode == ConversionMode.HQREGION:
        return emit_hqregion(
            zmw, region_table, primary_rg, scrap_rg, settings.hq_suffix_scrap
        )
    return emit_subreads(zmw, region_table, primary_rg, scrap_rg)


def build_read_groups(
    movie_name: str,
    settings: ConversionSettings,
    reader: BaxReader,
    available_features: set[BaseFeature],
) -> tuple[ReadGroupInfo, Optional[ReadGroupInfo]]:
    """Primary (and, for modes with scraps, SCRAP) read groups of a movie."""
    metadata = reader.run_metadata()
    read_groups = [
        build_read_group(
            movie_name,
            read_type,
            metadata=metadata,
            requested_features=settings.pulse_features,
            available_features=available_features,
            lossless_frames=settings.lossless_frames,
        )
        for read_type in (settings.mode.read_type, ReadType.SCRAP)
    ]
    return read_groups[0], read_groups[1] if settings.mode.has_scraps else None


def convert_movie(
    bax_files: list[str],
    output_prefix: str,
    settings: ConversionSettings,
) -> ConversionResult:
    """Convert all parts of one movie in a single pass.

    Args
    -------
        bax_files: The movie's .bax.h5 parts (or .ccs.h5 files), in part order.
        output_prefix: Output path prefix, e.g. /out/m140905_..._s1_X0
        settings: Conversion options.

    Returns
    -------
        A ConversionResult describing what was written.

    Raises
    -------
        ValueError: If no files are given or they belong to different movies.
        FileNotFoundError: If an input cannot be read.
        RegionTableFormatError / MalformedRegionTableError: On bad region tables.
        SinkError: If an output cannot be written; this movie's outputs are removed.
    """
    if not bax_files:
        raise ValueError("No input files given.")

    mode = settings.mode
    ccs = mode == ConversionMode.CCS
    primary_bam, scrap_bam = output_paths(output_prefix, mode)

    # Read groups are fixed before any record is written
    readers = []
    try:
        for bax_file in bax_files:
            readers.append(
                BaxReader(bax_file, features=settings.pulse_features, ccs=ccs)
            )
        movie_names = {reader.movie_name for reader in readers}
        if len(movie_names) != 1:
            raise ValueError(
                f"Input files belong to different movies: {', '.join(sorted(movie_names))}"
            )
        movie_name = readers[0].movie_name
        available_features = set.intersection(
            *[reader.available_features() for reader in readers]
        )
        primary_rg, scrap_rg = build_read_groups(
            movie_name, settings, readers[0], available_features
        )
    finally:
        for reader in readers:
            reader.close()

    if settings.verbose:
        print(f"\tMovie: {movie_name}")
        print(f"\tRead group {primary_rg.id}: {primary_rg.description()}")
        if scrap_rg is not None:
            print(f"\tRead group {scrap_rg.id}: {scrap_rg.description()}")

    loaded_features = set(primary_rg.features)
    if scrap_rg is not None:
        loaded_features |= set(scrap_rg.features)

    zmws_processed = 0
    sinks = []
    try:
        primary_sink = BamSink(primary_bam, primary_rg, settings.program)
        sinks.append(primary_sink)
        scrap_sink = None
        if scrap_rg is not None:
            scrap_sink = BamSink(scrap_bam, scrap_rg, settings.program)
            sinks.append(scrap_sink)

        for bax_file in bax_files:
            region_table = None
            if mode.needs_regions:
                region_table = load_region_table(bax_file)
                if settings.verbose:
                    print(f"\tLoaded regions for {len(region_table):,} ZMWs")

            with BaxReader(bax_file, features=loaded_features, ccs=ccs) as reader:
                if settings.verbose:
                    print(f"\tReading {reader.num_zmws:,} ZMWs from: {bax_file}")

                for zmw in tqdm(
                    reader.records(),
                    total=reader.num_zmws,
                    disable=not settings.verbose,
                ):
                    output = emit_zmw(zmw, settings, region_table, primary_rg, scrap_rg)
                    for record in output.primary:
                        primary_sink.write(record)
                    for record in output.scrap:
                        scrap_sink.write(record)
                    zmws_processed += 1

        for sink in sinks:
            sink.close()
    except BaseException:
        # The primary and scrap files are kept together or not at all
        for sink in sinks:
            sink.abort()
        raise

    return ConversionResult(
        movie_name=movie_name,
        primary_bam=primary_bam,
        scrap_bam=scrap_bam,
        zmws_processed=zmws_processed,
        primary_records=primary_sink.records_written,
        scrap_records=scrap_sink.records_written if scrap_sink is not None else 0,
    )
