"""
Featurelab: feature experiment runner for rental-duration regression.

This package provides a feature transform registry, training job
submission, evaluation collection and an experiment tracker that finds
the best feature configuration.
"""

from importlib.metadata import version

__version__ = version("featurelab")

__all__ = ["__version__"]
