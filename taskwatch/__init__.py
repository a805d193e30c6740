"""taskwatch - learn exactly once when submitted tasks complete."""

__version__ = "0.1.0"
