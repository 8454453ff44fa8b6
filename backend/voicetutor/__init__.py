"""Voice AI language tutor: spoken conversation core."""

__version__ = "0.1.0"
