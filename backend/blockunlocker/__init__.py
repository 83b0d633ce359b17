"""blockunlocker: Mining pool block confirmation and reward settlement."""

__version__ = "0.1.0"
__author__ = "Blockunlocker Team"

__all__ = ["__version__", "__author__"]
