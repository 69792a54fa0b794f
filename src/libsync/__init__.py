"""libsync

Library synchronization core for the Audiocore player: folder registration,
capability persistence, recursive scanning and catalog import.
See `DESIGN.md` for architecture notes.
"""

__all__ = [
    "__version__",
]

# Keep in sync with pyproject.toml
__version__ = "0.1.0"
