"""Lumeo early access signup API"""

__version__ = "1.0.0"
