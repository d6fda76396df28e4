"""Service modules"""
from .liquidation import LiquidationService
from .user_sync import UserSync

__all__ = ["LiquidationService", "UserSync"]
