"""Configuration layer: project discovery, config files, settings merge, logging."""
