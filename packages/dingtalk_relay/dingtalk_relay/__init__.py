"""DingTalk relay: bridges DingTalk robot messages to an OpenCode backend."""

from .version import __version__

__all__ = ["__version__"]
