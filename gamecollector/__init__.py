# gamecollector/__init__.py

"""GameCollector - locate installed games across PC storefronts and launchers."""

from __future__ import annotations

from gamecollector.version import __version__

__all__ = ["__version__"]
