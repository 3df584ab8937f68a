"""Configuration package for the DingTalk relay."""

from .config import RelayConfig, get_config, reload_config

__all__ = ["RelayConfig", "get_config", "reload_config"]
