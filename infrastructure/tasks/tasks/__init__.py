"""Task modules grouped by domain.

Import side effects register Celery tasks once this package is imported.
"""
from . import notifications, settlement  # noqa: F401 to register tasks

__all__ = ["notifications", "settlement"]
