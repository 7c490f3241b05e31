"""Read group identity, feature tags and run metadata for each read type."""

import hashlib
from enum import Enum
from typing import NamedTuple, Optional

PLATFORM = "PACBIO"


class ReadType(Enum):
    """Read type labels, stored verbatim in the read group description."""

    CCS = "CCS"
    HQREGION = "HQREGION"
    SCRAP = "SCRAP"
    POLYMERASE = "POLYMERASE"
    SUBREAD = "SUBREAD"


class BaseFeature(Enum):
    """Per-base features: (description name, BAM tag)."""

    DELETION_QV = ("DeletionQV", "dq")
    INSERTION_QV = ("InsertionQV", "iq")
    SUBSTITUTION_QV = ("SubstitutionQV", "sq")
    DELETION_TAG = ("DeletionTag", "dt")
    MERGE_QV = ("MergeQV", "mq")
    IPD = ("Ipd", "ip")
    PULSE_WIDTH = ("PulseWidth", "pw")
    SUBSTITUTION_TAG = ("SubstitutionTag", "st")

    @property
    def description_name(self) -> str:
        return self.value[0]

    @property
    def tag(self) -> str:
        return self.value[1]

    @property
    def is_frames(self) -> bool:
        return self in (BaseFeature.IPD, BaseFeature.PULSE_WIDTH)

    @property
    def is_quality(self) -> bool:
        return self.tag.endswith("q")


class FrameCodec(Enum):
    """Encoding of frame-based features (IPD, pulse width)."""

    V1 = "CodecV1"
    RAW = "Frames"


# Feature tags each read type carries (order is the description order)
FEATURES_BY_READ_TYPE: dict[ReadType, tuple[BaseFeature, ...]] = {
    ReadType.CCS: (
        BaseFeature.DELETION_QV,
        BaseFeature.INSERTION_QV,
        BaseFeature.SUBSTITUTION_QV,
    ),
    ReadType.HQREGION: (
        BaseFeature.DELETION_QV,
        BaseFeature.INSERTION_QV,
        BaseFeature.SUBSTITUTION_QV,
        BaseFeature.DELETION_TAG,
        BaseFeature.MERGE_QV,
        BaseFeature.IPD,
    ),
    ReadType.POLYMERASE: (
        BaseFeature.DELETION_QV,
        BaseFeature.INSERTION_QV,
        BaseFeature.SUBSTITUTION_QV,
        BaseFeature.DELETION_TAG,
        BaseFeature.MERGE_QV,
        BaseFeature.IPD,
        BaseFeature.PULSE_WIDTH,
    ),
}
FEATURES_BY_READ_TYPE[ReadType.SCRAP] = FEATURES_BY_READ_TYPE[ReadType.HQREGION]
FEATURES_BY_READ_TYPE[ReadType.SUBREAD] = FEATURES_BY_READ_TYPE[ReadType.POLYMERASE]

# Names accepted by --pulsefeatures
PULSE_FEATURE_NAMES: dict[str, BaseFeature] = {
    "DeletionQV": BaseFeature.DELETION_QV,
    "DeletionTag": BaseFeature.DELETION_TAG,
    "InsertionQV": BaseFeature.INSERTION_QV,
    "IPD": BaseFeature.IPD,
    "MergeQV": BaseFeature.MERGE_QV,
    "SubstitutionQV": BaseFeature.SUBSTITUTION_QV,
    "PulseWidth": BaseFeature.PULSE_WIDTH,
    "SubstitutionTag": BaseFeature.SUBSTITUTION_TAG,
}


class RunMetadata(NamedTuple):
    """Run-level values copied verbatim into every read group ("" if unknown)."""

    binding_kit: str = ""
    sequencing_kit: str = ""
    basecaller_version: str = ""
    frame_rate_hz: str = ""


class ReadGroupInfo(NamedTuple):
    """Read group of one movie / read type. Built once, before any record is written."""

    id: str
    read_type: ReadType
    movie_name: str
    features: tuple[BaseFeature, ...] = ()
    frame_codec: Optional[FrameCodec] = None
    binding_kit: str = ""
    sequencing_kit: str = ""
    basecaller_version: str = ""
    frame_rate_hz: str = ""

    @property
    def platform(self) -> str:
        return PLATFORM

    @property
    def feature_tags(self) -> dict[BaseFeature, str]:
        return {feature: feature.tag for feature in self.features}

    def has_feature(self, feature: BaseFeature) -> bool:
        return feature in self.features

    def description(self) -> str:
        """Build the DS field, e.g. READTYPE=SUBREAD;DeletionQV=dq;Ipd:CodecV1=ip;..."""
        fields = [f"READTYPE={self.read_type.value}"]
        for feature in self.features:
            name = feature.description_name
            if feature.is_frames and self.frame_codec is not None:
                name = f"{name}:{self.frame_codec.value}"
            fields.append(f"{name}={feature.tag}")
        for key, value in (
            ("BINDINGKIT", self.binding_kit),
            ("SEQUENCINGKIT", self.sequencing_kit),
            ("BASECALLERVERSION", self.basecaller_version),
            ("FRAMERATEHZ", self.frame_rate_hz),
        ):
            if value:
                fields.append(f"{key}={value}")
        return ";".join(fields)

    def to_header_dict(self) -> dict[str, str]:
        """The @RG line as a pysam header dict entry."""
        return {
            "ID": self.id,
            "PL": self.platform,
            "PU": self.movie_name,
            "DS": self.description(),
        }


def make_read_group_id(movie_name: str, read_type: ReadType) -> str:
    """First 8 hex characters of MD5("<movie>//<READTYPE>")."""
    raw_id = f"{movie_name}//{read_type.value}"
    return hashlib.md5(raw_id.encode("utf-8")).hexdigest()[:8]


def read_group_id_to_int(read_group_id: str) -> int:
    """Interpret a read group id as a signed 32-bit integer (as stored in .pbi files)."""
    value = int(read_group_id, 16)
    return value - (1 << 32) if value >= (1 << 31) else value


def build_read_group(
    movie_name: str,
    read_type: ReadType,
    metadata: Optional[RunMetadata] = None,
    requested_features: Optional[set[BaseFeature]] = None,
    available_features: Optional[set[BaseFeature]] = None,
    lossless_frames: bool = False,
) -> ReadGroupInfo:
    """Derive the read group for a movie and read type.

    Args
    ----------
    movie_name : str
        The movie name, e.g. m140905_042212_sidney_c1008_s1_X0
    read_type : ReadType
        The read type of the stream this group labels.
    metadata : RunMetadata, optional
        Run metadata. Missing metadata gives empty values, never an error.
    requested_features : set[BaseFeature], optional
        Narrows the read type's feature table (None keeps it whole).
    available_features : set[BaseFeature], optional
        Features the input can supply (None assumes all).
    lossless_frames : bool, optional
        Store raw frames instead of the V1 codec.

    Returns
    -------
    ReadGroupInfo
    """
    if metadata is None:
        metadata = RunMetadata()

    features = tuple(
        feature
        for feature in FEATURES_BY_READ_TYPE[read_type]
        if (requested_features is None or feature in requested_features)
        and (available_features is None or feature in available_features)
    )

    frame_codec = None
    if any(feature.is_frames for feature in features):
        frame_codec = FrameCodec.RAW if lossless_frames else FrameCodec.V1

    return ReadGroupInfo(
        id=make_read_group_id(movie_name, read_type),
        read_type=read_type,
        movie_name=movie_name,
        features=features,
        frame_codec=frame_codec,
        binding_kit=metadata.binding_kit or "",
        sequencing_kit=metadata.sequencing_kit or "",
        basecaller_version=metadata.basecaller_version or "",
        frame_rate_hz=metadata.frame_rate_hz or "",
    )


def parse_read_group(header_entry: dict) -> ReadGroupInfo:
    """Rebuild a ReadGroupInfo from an @RG header dict (the inverse of to_header_dict).

    Raises
    -------
    ValueError
        If the entry has no READTYPE in its description or names an unknown
        read type.
    """
    fields: dict[str, str] = {}
    for item in header_entry.get("DS", "").split(";"):
        if "=" in item:
            key, value = item.split("=", 1)
            fields[key] = value

    if "READTYPE" not in fields:
        raise ValueError(f"Read group {header_entry.get('ID')} has no READTYPE")
    read_type = ReadType(fields["READTYPE"])

    by_name = {feature.description_name: feature for feature in BaseFeature}
    features = []
    frame_codec = None
    for key in fields:
        name, _, codec = key.partition(":")
        if name in by_name:
            features.append(by_name[name])
            if codec:
                frame_codec = FrameCodec(codec)

    return ReadGroupInfo(
        id=header_entry["ID"],
        read_type=read_type,
        movie_name=header_entry.get("PU", ""),
        features=tuple(features),
        frame_codec=frame_codec,
        binding_kit=fields.get("BINDINGKIT", ""),
        sequencing_kit=fields.get("SEQUENCINGKIT", ""),
        basecaller_version=fields.get("BASECALLERVERSION", ""),
        frame_rate_hz=fields.get("FRAMERATEHZ", ""),
    )
