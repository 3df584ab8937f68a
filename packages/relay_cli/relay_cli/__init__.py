"""Command line interface for the DingTalk relay."""
