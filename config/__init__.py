"""Configuration for the Persona Chat Assistant."""

from .settings import Settings

__all__ = ["Settings"]
