"""
Core infrastructure for the Freelance Marketplace API
"""

from app.core.time import ensure_aware, utcnow

__all__ = [
    "ensure_aware",
    "utcnow",
]
