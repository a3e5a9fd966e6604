from .manager import CompletedTable, Listener, SessionManager

__all__ = ["SessionManager", "CompletedTable", "Listener"]
