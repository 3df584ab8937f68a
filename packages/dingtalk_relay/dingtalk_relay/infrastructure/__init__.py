"""Infrastructure layer: caching, logging, monitoring and transports."""
