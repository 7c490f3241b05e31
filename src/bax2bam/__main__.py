# Import modules
import click
import os
import sys
import time
from typing import Optional

from bax2bam import __version__
from bax2bam.bax import BaxReader
from bax2bam.converter import (
    ConversionMode,
    ConversionSettings,
    convert_movie,
    output_paths,
)
from bax2bam.readgroup import PULSE_FEATURE_NAMES, BaseFeature

MODES = {
    "subread": ConversionMode.SUBREAD,
    "hqregion": ConversionMode.HQREGION,
    "polymerase": ConversionMode.POLYMERASE,
    "ccs": ConversionMode.CCS,
}

INPUT_SUFFIXES = (".bax.h5", ".ccs.h5")


def parse_pulse_features(value: Optional[str]) -> Optional[set[BaseFeature]]:
    """Parse a comma-separated --pulsefeatures list.

    Args
    ----------
    value (str): e.g. "DeletionQV,IPD,MergeQV", or None for all features.

    Returns
    ----------
    set: The selected features, or None if no selection was given.

    Raises
    ----------
    ValueError: If a name is not a known pulse feature.
    """
    if value is None:
        return None
    features = set()
    for name in value.split(","):
        name = name.strip()
        if not name:
            continue
        if name not in PULSE_FEATURE_NAMES:
            raise ValueError(
                f"Unknown pulse feature: {name} (choose from {', '.join(PULSE_FEATURE_NAMES)})"
            )
        features.add(PULSE_FEATURE_NAMES[name])
    return features


def get_input_files(input_paths: tuple, fofn: Optional[str] = None) -> list:
    """Collect the .bax.h5 / .ccs.h5 files to process.

    Args
    ----------
    input_paths (tuple): Input files or directories (searched recursively).
    fofn (str): Optional file listing one input path per line.

    Returns
    ----------
    list: Input files, in the order given (directory contents sorted).

    Raises
    ----------
    ValueError: If a path is not a file or a directory.
    """
    paths = list(input_paths)
    if fofn:
        with open(fofn, "r") as handle:
            paths.extend(line.strip() for line in handle if line.strip())

    input_files = []
    for input_path in paths:
        if os.path.isfile(input_path):
            input_files.append(input_path)
        elif os.path.isdir(input_path):
            # Recursively find all legacy base-call files in this path
            found = []
            for root, _, files in os.walk(input_path):
                for file in files:
                    if file.endswith(INPUT_SUFFIXES):
                        found.append(os.path.join(root, file))
            input_files.extend(sorted(found))
        else:
            raise ValueError(f"Input path {input_path} is not a file or a directory.")
    return input_files


def group_by_movie(input_files: list, ccs: bool = False) -> dict[str, list[str]]:
    """Group input files by movie name, keeping the given part order."""
    movies: dict[str, list[str]] = {}
    for input_file in input_files:
        with BaxReader(input_file, ccs=ccs) as reader:
            movies.setdefault(reader.movie_name, []).append(input_file)
    return movies


def get_output_prefix(
    movie_name: str, output_dir: str, output_prefix: Optional[str]
) -> str:
    """The output prefix of a movie: --output-prefix, or <output-dir>/<movie>."""
    if output_prefix:
        return output_prefix
    return os.path.join(output_dir, movie_name)


def validate_input_output(
    movies: dict[str, list[str]],
    prefixes: dict[str, str],
    mode: ConversionMode,
    overwrite: bool,
) -> list[str]:
    """Validate the input and output files.

    Returns
    ----------
    list: Movies to convert (movies whose outputs exist are skipped without --overwrite).

    Raises
    ----------
    ValueError: If an input is unreadable or an output location is not writable.
    """
    movies_to_convert = []
    for movie_name, input_files in movies.items():
        for input_file in input_files:
            if not os.access(input_file, os.R_OK):
                raise ValueError(f"Input file is not readable: {input_file}")

        existing = [
            path
            for path in output_paths(prefixes[movie_name], mode)
            if path is not None and os.path.exists(path)
        ]
        if existing:
            if overwrite and all(os.access(path, os.W_OK) for path in existing):
                print(
                    f"\t\tOutput exists and --overwrite specified. Will overwrite: {', '.join(existing)}"
                )
            else:
                print(
                    f"\t\tOutput exists and --overwrite not specified. Skipping this movie: {movie_name}"
                )
                continue
        else:
            output_dir = os.path.dirname(os.path.abspath(prefixes[movie_name]))
            if not os.access(output_dir, os.W_OK):
                raise ValueError(f"Output path is not writable: {prefixes[movie_name]}")
        movies_to_convert.append(movie_name)
    return movies_to_convert


@click.command(
    help="Convert legacy PacBio .bax.h5 / .ccs.h5 files to PacBio BAM files (with .pbi indices)."
)
@click.version_option(version=__version__)
@click.argument("input_paths", nargs=-1, type=click.Path(exists=True))
@click.option(
    "--fofn",
    help="File listing input files, one per line.",
    type=click.Path(exists=True, file_okay=True, dir_okay=False, readable=True),
)
@click.option(
    "--subread",
    "mode",
    flag_value="subread",
    default=True,
    help="Output subreads.bam + scraps.bam (default).",
)
@click.option(
    "--hqregion", "mode", flag_value="hqregion", help="Output hqregions.bam + lqregions.bam."
)
@click.option(
    "--polymeraseread", "mode", flag_value="polymerase", help="Output polymerase.bam."
)
@click.option("--ccs", "mode", flag_value="ccs", help="Output ccs.bam from .ccs.h5 inputs.")
@click.option(
    "--output-prefix",
    "-o",
    help="Output file prefix (only valid for a single movie). Defaults to <output-dir>/<movie>.",
    type=str,
)
@click.option(
    "--output-dir",
    help="Output directory when no --output-prefix is given (default = current directory).",
    default=".",
    type=click.Path(file_okay=False, dir_okay=True),
)
@click.option(
    "--pulsefeatures",
    help="Comma-separated pulse features to include, e.g. DeletionQV,IPD,MergeQV (default = all).",
    type=str,
)
@click.option(
    "--losslessframes",
    help="Store raw frame counts for IPD and PulseWidth instead of the lossy 8-bit codec.",
    is_flag=True,
)
@click.option(
    "--hqregion-suffix-scrap",
    help="With --hqregion, also write the sequence after the HQ region to lqregions.bam.",
    is_flag=True,
)
@click.option("--verbose", help="Verbose output.", is_flag=True)
@click.option("--overwrite", help="Overwrite output files if they exist.", is_flag=True)
def main(
    input_paths: tuple,
    fofn: Optional[str],
    mode: str,
    output_prefix: Optional[str],
    output_dir: str,
    pulsefeatures: Optional[str],
    losslessframes: bool,
    hqregion_suffix_scrap: bool,
    verbose: bool,
    overwrite: bool,
) -> None:
    """bax2bam."""
    time_start = time.time()
    conversion_mode = MODES[mode]

    try:
        pulse_features = parse_pulse_features(pulsefeatures)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--pulsefeatures")

    #################################################
    # Establish input/output for each movie
    #################################################

    input_files = get_input_files(input_paths, fofn)
    if not input_files:
        raise click.UsageError("No input files given.")

    print(f"Read type: {conversion_mode.read_type.value}")
    print(f"\nFound {len(input_files)} input file(s) to process:")
    for input_file in input_files:
        print(f"\t{input_file}")

    try:
        movies = group_by_movie(input_files, ccs=conversion_mode == ConversionMode.CCS)
    except (OSError, ValueError) as e:
        raise click.ClickException(str(e))
    if output_prefix and len(movies) > 1:
        raise click.UsageError(
            f"--output-prefix can only be used with a single movie (found {len(movies)})."
        )

    os.makedirs(output_dir, exist_ok=True)
    prefixes = {
        movie_name: get_output_prefix(movie_name, output_dir, output_prefix)
        for movie_name in movies
    }
    movies_to_convert = validate_input_output(
        movies=movies,
        prefixes=prefixes,
        mode=conversion_mode,
        overwrite=overwrite,
    )

    settings = ConversionSettings(
        mode=conversion_mode,
        pulse_features=pulse_features,
        lossless_frames=losslessframes,
        hq_suffix_scrap=hqregion_suffix_scrap,
        program={
            "ID": "bax2bam",
            "PN": "bax2bam",
            "VN": __version__,
            "CL": " ".join(["bax2bam"] + sys.argv[1:]),
        },
        verbose=verbose,
    )

    #################################################
    # Convert each movie
    #################################################

    errors_list = []
    for i, movie_name in enumerate(movies_to_convert):
        time_movie = time.time()
        print("\n" + "=" * 80)
        print(f"Processing movie {i+1} of {len(movies_to_convert)}: {movie_name}")

        try:
            result = convert_movie(
                bax_files=movies[movie_name],
                output_prefix=prefixes[movie_name],
                settings=settings,
            )
        except (OSError, ValueError) as e:
            print(f"Error: {e}")
            errors_list.append(e)
            continue

        print(f"\nConverted {result.zmws_processed:,} ZMWs.")
        print(f"\tWrote {result.primary_records:,} records to: {result.primary_bam}")
        if result.scrap_bam is not None:
            print(f"\tWrote {result.scrap_records:,} records to: {result.scrap_bam}")

        # Report performance time
        print(f"\nTime for this movie: {time.time() - time_movie:.2f} seconds")
        print(f"\nTotal time elapsed: {time.time() - time_start:.2f} seconds")

    if errors_list:
        print(f"\n{len(errors_list)} errors occurred during processing:")
        for error in errors_list:
            print(f"\t{error}")
        sys.exit(1)

    print("\nRun complete.")


if __name__ == "__main__":
    main(prog_name="bax2bam")  # pylint: disable=no-value-for-parameter
