"""
ASKAI — natural language in, shell command out.

Layered caching and a resident daemon keep repeated prompts near-instant.
"""

from askai.identity import __version__

__all__ = ["__version__"]
