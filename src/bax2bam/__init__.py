"""bax2bam: Convert legacy PacBio bax.h5/ccs.h5 files to PacBio BAM.

bax2bam reads the per-ZMW polymerase reads stored in a legacy HDF5 base-call
file, together with its region table (HQ region and adapter calls), and
writes one unaligned BAM per read type with a companion PacBio index (.pbi).

Main Components:
    RegionTable: Per-ZMW lookup of HQ region and adapter annotations.
    compute_subread_intervals: Partitions a ZMW's HQ region at adapter
        boundaries into subread intervals with local context flags.
    build_read_group: Derives read group id, feature tags and run metadata
        for a movie / read type.
    convert_movie: Drives one pass over a movie and routes records to the
        primary and scrap BAM files.

Example:
    Command-line usage::

        $ bax2bam m140905_042212_sidney_c1008_s1_X0.1.bax.h5 --subread

    Python API usage::

        from bax2bam.converter import ConversionMode, ConversionSettings, convert_movie

        settings = ConversionSettings(mode=ConversionMode.SUBREAD)
        result = convert_movie(
            bax_files=["/path/to/movie.1.bax.h5"],
            output_prefix="/path/to/movie",
            settings=settings,
        )

Output Format:
    - <prefix>.subreads.bam + <prefix>.scraps.bam (--subread, default)
    - <prefix>.hqregions.bam + <prefix>.lqregions.bam (--hqregion)
    - <prefix>.polymerase.bam (--polymeraseread)
    - <prefix>.ccs.bam (--ccs)
    Each BAM is accompanied by a <bam>.pbi index.
"""

__version__ = "0.9"
