"""Publishing adapters that push scheduled posts to social platforms."""

__version__ = "0.1.0"
