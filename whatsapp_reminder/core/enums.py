from enum import Enum


class EntryState(str, Enum):
    PENDING = "pending"
    DUE = "due"
    PROCESSED = "processed"
    EXPIRED = "expired"


class StoreBackend(str, Enum):
    CSV = "csv"
    SQL = "sql"
