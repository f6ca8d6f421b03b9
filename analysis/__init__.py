"""analysis package

Pure transforms over cached and imported events: normalization, filtering,
coverage checks and crash correlation. Submodules are imported directly.
"""
