"""Application layer: relay pipeline services and models."""
