"""Tiered model access and quota enforcement for image generation."""

__version__ = "1.0.0"
