"""Version information for dingtalk_relay."""

__version__ = "2.1.0"
