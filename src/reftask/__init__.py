"""reftask: immutable tasks stored in git refs, driven by a headless agent loop."""

__version__ = "0.1.0"
