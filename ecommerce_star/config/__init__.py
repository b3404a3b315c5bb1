"""
E-Commerce Clickstream Star Schema
Configuration Module
"""
from .settings import Settings, PipelineSettings, get_settings

__all__ = ["Settings", "PipelineSettings", "get_settings"]
