"""Local-first store, batch merge and exports for botanical field records."""

__version__ = "0.1.0"
