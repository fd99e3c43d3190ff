"""NutriLens AI - uncertainty-aware meal analysis backend."""

__version__ = "0.1.0"
