from .sql import SqlRegistry

__all__ = ["SqlRegistry"]
