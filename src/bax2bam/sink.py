"""Write records to an unaligned PacBio BAM file and build its .pbi index."""

import os
import struct
from array import array
from typing import Optional

# Third party modules
import numpy as np
import pysam
from pysam.libcbgzf import BGZFile

from bax2bam.frames import encode_frames_v1
from bax2bam.projector import EmittedRecord
from bax2bam.readgroup import (
    BaseFeature,
    FrameCodec,
    ReadGroupInfo,
    read_group_id_to_int,
)

SAM_VERSION = "1.5"
PACBIO_BAM_VERSION = "3.0.1"

PBI_MAGIC = b"PBI\x01"
PBI_VERSION = 0x030001
PBI_BASIC_SECTION = 0x0000
PBI_RESERVED_BYTES = 18

# Scrap ZMW type: every ZMW is treated as a normal sequencing ZMW
SCRAP_ZMW_TYPE_NORMAL = "N"

# Phred values above this cannot be printed as a Phred+33 character
MAX_QUALITY_VALUE = 93


class SinkError(IOError):
    """The BAM writer could not commit a record or finalize its index."""


def build_bam_header(read_group: ReadGroupInfo, program: Optional[dict] = None) -> dict:
    """Build the header dict of an unaligned PacBio BAM with a single read group."""
    header = {
        "HD": {"VN": SAM_VERSION, "SO": "unknown", "pb": PACBIO_BAM_VERSION},
        "RG": [read_group.to_header_dict()],
    }
    if program:
        header["PG"] = [program]
    return header


def encode_qualities(values) -> str:
    """Phred values -> Phred+33 string."""
    values = np.minimum(np.asarray(values, dtype=np.uint8), MAX_QUALITY_VALUE)
    return (values + 33).astype(np.uint8).tobytes().decode("ascii")


def encode_feature(feature: BaseFeature, values, frame_codec: Optional[FrameCodec]):
    """Convert a per-base feature array to the value stored in its BAM tag."""
    if feature.is_quality:
        return encode_qualities(values)
    if feature.is_frames:
        if frame_codec == FrameCodec.RAW:
            return array("H", np.asarray(values, dtype=np.uint16).tobytes())
        return array("B", encode_frames_v1(values).tobytes())
    # Deletion/substitution tags are stored as characters
    return np.asarray(values, dtype=np.uint8).tobytes().decode("ascii")


def to_aligned_segment(
    record: EmittedRecord,
    read_group: ReadGroupInfo,
    header: pysam.AlignmentHeader,
) -> pysam.AlignedSegment:
    """Build an unmapped pysam segment carrying the PacBio tags of a record."""
    segment = pysam.AlignedSegment(header)
    segment.query_name = record.name
    segment.query_sequence = record.sequence
    segment.flag = 4
    segment.reference_id = -1
    segment.reference_start = -1
    segment.mapping_quality = 255
    segment.next_reference_id = -1
    segment.next_reference_start = -1
    segment.template_length = 0
    # Qualities must be set after the sequence
    if record.qualities is not None:
        segment.query_qualities = array(
            "B", np.asarray(record.qualities, dtype=np.uint8).tobytes()
        )

    segment.set_tag("RG", read_group.id, value_type="Z")
    segment.set_tag("zm", record.hole_number, value_type="i")
    segment.set_tag("np", record.num_passes, value_type="i")
    if record.query_start is not None:
        segment.set_tag("qs", record.query_start, value_type="i")
        segment.set_tag("qe", record.query_end, value_type="i")
    if record.read_score is not None:
        segment.set_tag("rq", float(record.read_score), value_type="f")
    if record.snr is not None:
        segment.set_tag("sn", array("f", record.snr))
    if record.local_context is not None:
        segment.set_tag("cx", int(record.local_context), value_type="i")

    for feature, values in record.features.items():
        segment.set_tag(
            feature.tag, encode_feature(feature, values, read_group.frame_codec)
        )

    if record.scrap_region_type is not None:
        segment.set_tag("sz", SCRAP_ZMW_TYPE_NORMAL, value_type="A")
        segment.set_tag("sc", record.scrap_region_type.value, value_type="A")

    return segment


class BamSink:
    """One output BAM (plus .pbi) for a single read group.

    Every record written gets the sink's read group id. Used as a context
    manager the sink is finalized on success and removed on error.
    """

    def __init__(
        self,
        output_bam: str,
        read_group: ReadGroupInfo,
        program: Optional[dict] = None,
    ):
        self.output_bam = output_bam
        self.index_file = output_bam + ".pbi"
        self.read_group = read_group
        self.records_written = 0
        self._closed = False

        try:
            self._bam = pysam.AlignmentFile(
                output_bam, "wb", header=build_bam_header(read_group, program)
            )
        except (OSError, ValueError) as exc:
            raise SinkError(f"Cannot open BAM file for writing: {output_bam}") from exc

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        if exc_type is None:
            self.close()
        else:
            self.abort()

    def write(self, record: EmittedRecord) -> None:
        """Write one record.

        Raises
        -------
        SinkError
            If the record cannot be committed.
        """
        try:
            segment = to_aligned_segment(record, self.read_group, self._bam.header)
            self._bam.write(segment)
        except (OSError, ValueError) as exc:
            raise SinkError(
                f"Cannot write record {record.name} to: {self.output_bam}"
            ) from exc
        self.records_written += 1

    def close(self) -> None:
        """Finish the BAM file and write its .pbi index."""
        if self._closed:
            return
        self._closed = True
        try:
            self._bam.close()
            write_pbi(self.output_bam, self.index_file)
        except (OSError, ValueError) as exc:
            self._remove_outputs()
            raise SinkError(f"Cannot finalize BAM file: {self.output_bam}") from exc

    def abort(self) -> None:
        """Delete this sink's BAM and index, closing the BAM first if still open.

        Also valid after close(), so a finished file can be withdrawn when its
        sibling fails.
        """
        if not self._closed:
            self._closed = True
            try:
                self._bam.close()
            except (OSError, ValueError):
                # The partial file is removed below either way
                pass
        self._remove_outputs()

    def _remove_outputs(self) -> None:
        for path in (self.output_bam, self.index_file):
            if os.path.exists(path):
                os.remove(path)


def write_pbi(bam_file: str, index_file: str) -> int:
    """Scan a finished BAM file and write its PacBio index (basic section only).

    Returns
    -------
    int
        The number of indexed records.
    """
    rg_ids = []
    query_starts = []
    query_ends = []
    hole_numbers = []
    read_qualities = []
    context_flags = []
    file_offsets = []

    with pysam.AlignmentFile(bam_file, "rb", check_sq=False) as bam:
        while True:
            offset = bam.tell()
            try:
                segment = next(bam)
            except StopIteration:
                break
            file_offsets.append(offset)
            rg_ids.append(read_group_id_to_int(segment.get_tag("RG")))
            query_starts.append(segment.get_tag("qs") if segment.has_tag("qs") else 0)
            query_ends.append(
                segment.get_tag("qe")
                if segment.has_tag("qe")
                else segment.query_length
            )
            hole_numbers.append(segment.get_tag("zm"))
            read_qualities.append(
                segment.get_tag("rq") if segment.has_tag("rq") else 0.0
            )
            context_flags.append(segment.get_tag("cx") if segment.has_tag("cx") else 0)

    num_reads = len(file_offsets)
    with BGZFile(index_file, "wb") as handle:
        handle.write(
            struct.pack("<4sIHI", PBI_MAGIC, PBI_VERSION, PBI_BASIC_SECTION, num_reads)
        )
        handle.write(b"\x00" * PBI_RESERVED_BYTES)
        handle.write(np.asarray(rg_ids, dtype="<i4").tobytes())
        handle.write(np.asarray(query_starts, dtype="<i4").tobytes())
        handle.write(np.asarray(query_ends, dtype="<i4").tobytes())
        handle.write(np.asarray(hole_numbers, dtype="<i4").tobytes())
        handle.write(np.asarray(read_qualities, dtype="<f4").tobytes())
        handle.write(np.asarray(context_flags, dtype="u1").tobytes())
        handle.write(np.asarray(file_offsets, dtype="<i8").tobytes())

    return num_reads


def read_pbi(index_file: str) -> dict[str, np.ndarray]:
    """Read the basic section of a .pbi file into numpy arrays.

    Raises
    -------
    ValueError
        If the file is not a PacBio index.
    """
    with BGZFile(index_file, "rb") as handle:
        data = handle.read()

    magic, version, sections, num_reads = struct.unpack_from("<4sIHI", data, 0)
    if magic != PBI_MAGIC:
        raise ValueError(f"Not a PacBio index file: {index_file}")

    position = struct.calcsize("<4sIHI") + PBI_RESERVED_BYTES
    columns = {}
    for name, dtype in (
        ("rgId", "<i4"),
        ("qStart", "<i4"),
        ("qEnd", "<i4"),
        ("holeNumber", "<i4"),
        ("readQual", "<f4"),
        ("ctxtFlag", "u1"),
        ("fileOffset", "<i8"),
    ):
        size = np.dtype(dtype).itemsize * num_reads
        if len(data) < position + size:
            raise ValueError(f"Truncated PacBio index file: {index_file}")
        columns[name] = (
            np.frombuffer(data[position : position + size], dtype=dtype)
            if size
            else np.zeros(0, dtype=dtype)
        )
        position += size

    columns["version"] = np.array([version])
    columns["sections"] = np.array([sections])
    return columns
