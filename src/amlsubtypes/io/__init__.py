"""
Input readers, artifact reader/writer and gene symbol filters.

    loaders: raw BeatAML tables (expression, mutation calls, sample map)
        and published artifact directories
    writers: atomic publication of the artifact directory
    data_filters: clean-symbol filters for expression rows

Submodules are imported directly (``from amlsubtypes.io.loaders import
load_artifacts``); loaders and writers depend on the cohort and statistics
layers, which themselves use data_filters.
"""
