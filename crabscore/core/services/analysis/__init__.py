"""
Static safety analysis of Rust sources.

    walker      which files to look at
    syntax      tree-sitter parsing into SourceUnits
    catalog     the versioned pattern catalog
    detectors   per-file finding extraction
    analyzer    parallel fan-out, cache and reduction
    complexity  project size and hygiene statistics
"""
