"""sharectl — multi-network session coordinator for sharefeed."""

__version__ = "0.3.0"
