"""Errata: study-error tracking and problem-index analytics."""

from errata.consts import VERSION

__version__ = VERSION
