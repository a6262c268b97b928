"""Terminal output helpers built on rich."""
