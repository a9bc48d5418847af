from portal.db.activity import fetch_activity, insert_activity
from portal.db.core import close_pool, get_pool, init_pool

__all__ = [
    "close_pool",
    "fetch_activity",
    "get_pool",
    "init_pool",
    "insert_activity",
]
