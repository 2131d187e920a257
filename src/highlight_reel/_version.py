"""Version information for the highlight-reel package."""

__version__ = "0.1.0"
