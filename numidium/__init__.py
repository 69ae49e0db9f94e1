"""Numidium - a local development agent for Ollama models."""

__version__ = "0.1.0"

from numidium.config import Config

__all__ = ["Config", "__version__"]
