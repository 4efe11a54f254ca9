"""
.. include:: ../README.md
"""

__all__ = [
    "client",
    "config",
    "manifest",
    "options",
    "signals",
    "values",
    "render",
    "authentication",
    "reference_cache",
    "mutate",
    "annotate",
    "watcher",
    "manager",
    "exceptions",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
