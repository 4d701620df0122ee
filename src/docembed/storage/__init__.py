from .database import create_session_factory, init_db
from .models import Base, IngestionRunRecord, PointRecord

__all__ = [
    "Base",
    "IngestionRunRecord",
    "PointRecord",
    "create_session_factory",
    "init_db",
]
