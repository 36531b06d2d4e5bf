"""Utility modules."""

from stocktrack.utils.logging import setup_logging
from stocktrack.utils.parsing import parse_consumption_rate, parse_item_payload

__all__ = ["setup_logging", "parse_consumption_rate", "parse_item_payload"]
