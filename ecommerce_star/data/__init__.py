"""
Data Generation Module
"""
from .generators import ClickstreamGenerator

__all__ = [
    "ClickstreamGenerator",
]
