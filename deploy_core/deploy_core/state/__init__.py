"""History persistence layer using SQLAlchemy."""

from deploy_core.state.database import create_tables, dispose_engine, get_engine, get_session
from deploy_core.state.repository import HistoryRepository, row_to_entry

__all__ = [
    "HistoryRepository",
    "create_tables",
    "dispose_engine",
    "get_engine",
    "get_session",
    "row_to_entry",
]
