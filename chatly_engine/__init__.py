"""
Chatly engagement and trust scoring engine.

Use `chatly_engine.container.build_engine` to get a fully wired engine.
"""

__version__ = "0.1.0"
