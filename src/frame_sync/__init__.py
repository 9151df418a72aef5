"""Move photos from cloud albums onto an art display device."""

__version__ = "0.1.0"
