# gamecollector/version.py

"""
Central version management for GameCollector.
"""

from __future__ import annotations

__all__ = ["__app_name__", "__version__", "__release_date__", "__license__"]

__app_name__ = "GameCollector"
__version__ = "0.4.0"
__release_date__ = "2026-10-18"
__license__ = "MIT"
