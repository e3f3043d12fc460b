"""Per-family explanation extractors.

Each family exposes a ``build_*`` function that assembles the
explanation from normalized evidence, a ``*_from_metadata`` extractor
for the structured path, and a ``*_from_steps`` extractor that
reconstructs the same evidence from raw step payloads.
"""
