"""
Utilities Module
================

Helper functions and utility classes.
"""

from app.utils.helpers import Clock, system_clock

__all__ = ["Clock", "system_clock"]
