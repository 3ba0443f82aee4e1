"""
Declarative entity tables and form wizards for Django projects.
"""

from .defaults import LIBRARY_NAME, LIBRARY_VERSION

__version__ = LIBRARY_VERSION
__title__ = LIBRARY_NAME

__all__ = ["__version__", "__title__"]
