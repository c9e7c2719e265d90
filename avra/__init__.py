"""AVRA: an Aura economy and text-command game engine."""

__version__ = "0.1.0"
