"""Background drafting pipeline for the ghostwriting backend."""

__version__ = "0.1.0"
