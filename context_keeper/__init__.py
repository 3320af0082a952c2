"""
context_keeper - persisted context records, versioned backups, session capture
and similarity retrieval.
"""

from .core.config import VERSION

__version__ = VERSION
