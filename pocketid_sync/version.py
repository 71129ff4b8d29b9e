"""Version information for pocketid-sync."""

__version__ = "0.1.0"
