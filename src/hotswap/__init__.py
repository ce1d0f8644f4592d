"""hotswap - manifest-driven self-update engine."""

__version__ = "0.1.0"
