"""packsmith: dependency resolution for mod packs."""

__version__ = "0.1.0"
