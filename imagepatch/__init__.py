"""Image references, tags, OS detection, platforms, image config and BuildKit endpoint helpers."""

__version__ = "0.1.0"