"""HomeGPT gateway service."""

from homegpt import __version__

__all__ = ["__version__"]
