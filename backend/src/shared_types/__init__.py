"""
Shared type definitions for the clinic booking backend.

This module contains dataclasses and types that are used across multiple services.
"""

from shared_types.availability import SlotData, WeeklyRuleData, DateOverrideData

__all__ = ["SlotData", "WeeklyRuleData", "DateOverrideData"]
