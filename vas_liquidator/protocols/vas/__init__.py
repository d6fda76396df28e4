"""VAS engine protocol logic."""
from . import health

__all__ = ["health"]
