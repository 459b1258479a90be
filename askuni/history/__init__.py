"""Chat history collaborator: sessions, threads and persisted turns."""

from askuni.history.store import HistoryStore, get_history_store, new_thread_id

__all__ = ["HistoryStore", "get_history_store", "new_thread_id"]
