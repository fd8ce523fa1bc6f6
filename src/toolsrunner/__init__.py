"""Tools Runner - version-pinned tool launcher with a local archive cache."""

__version__ = "0.1.0"
