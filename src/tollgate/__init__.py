"""Tollgate - authorization pipeline for agent tool calls.

Decides whether a tool invocation may run now, must wait for a human, or is
forbidden outright.
"""

__version__ = "0.1.0"

from tollgate.config import Settings, get_settings, reload_settings

__all__ = ["Settings", "get_settings", "reload_settings", "__version__"]
