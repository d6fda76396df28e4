"""Protocol interfaces for the VAS liquidator."""
from .chain import ChainClient
from .notifier import Notifier
from .price_oracle import PriceOracle
from .registry import Registry

__all__ = ["ChainClient", "Notifier", "PriceOracle", "Registry"]
