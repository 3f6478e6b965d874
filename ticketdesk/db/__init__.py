from ticketdesk.db.base import Base
from ticketdesk.db.session import Database, get_session

__all__ = ["Base", "Database", "get_session"]
