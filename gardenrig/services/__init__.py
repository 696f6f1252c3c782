from .history_store import MOISTURE_HISTORY, SAFETY_SHUTDOWN_LOG, HistoryStore

__all__ = ["HistoryStore", "MOISTURE_HISTORY", "SAFETY_SHUTDOWN_LOG"]
