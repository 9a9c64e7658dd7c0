"""Banana Studio - cancellable Gemini image generation driven by a host tick."""

__version__ = "0.1.0"
