"""AutoDev — autonomous research-driven code improvement pipeline."""

from autodev.identity import __codename__, __tagline__, __version__

__all__ = ["__codename__", "__tagline__", "__version__"]
