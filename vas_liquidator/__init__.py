"""Liquidation bot for the VAS over-collateralized stablecoin."""

__version__ = "0.1.0"
