"""Infrastructure layer: framework home, install manifest, file locking, state files, pip.

This layer depends on stdlib and third-party libs only. It must never import
from the registry, dispatcher, or command modules.
"""
