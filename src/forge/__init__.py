"""forge: a modular command-line framework core."""

__version__ = "0.4.0"
