"""Smart City Tourist Guide backend."""

__version__ = "1.0.0"
