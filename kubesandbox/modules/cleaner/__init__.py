"""
Cleaner Module - Black Box Interface

Purpose: Delete the sandbox project after a delay, independently of the runner
Interface: Cleaner.builder().wait(...).build(), start(), stop(), destroy()
Hidden: Timer thread, stop channel
"""

from .cleaner import GRACE_PERIOD, Cleaner, CleanerBuilder, CleanerState

__all__ = ["GRACE_PERIOD", "Cleaner", "CleanerBuilder", "CleanerState"]
