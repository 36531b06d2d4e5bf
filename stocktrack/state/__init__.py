"""State management modules."""

from stocktrack.state.alert_store import AlertStore
from stocktrack.state.base import ItemStore
from stocktrack.state.local_store import LocalItemStore
from stocktrack.state.manager import StateManager
from stocktrack.state.remote_store import RemoteItemStore

__all__ = ["AlertStore", "ItemStore", "LocalItemStore", "RemoteItemStore", "StateManager"]
