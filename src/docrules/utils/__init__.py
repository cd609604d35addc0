"""Utility modules for docrules."""

from . import canonical_json
from . import hashing
from . import time

__all__ = ['canonical_json', 'hashing', 'time']
