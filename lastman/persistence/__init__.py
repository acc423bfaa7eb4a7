"""
Persistence layer for Last Man Standing data.
No business logic, only read/write interfaces.
"""
from .db import get_connection, init_db, set_db_path, transaction
from .repositories import (
    UserRepository,
    SettingsRepository,
    EntityRepository,
    FixtureRepository,
    ContestRepository,
    MemberRepository,
    NominationRepository,
)

__all__ = [
    "get_connection",
    "init_db",
    "set_db_path",
    "transaction",
    "UserRepository",
    "SettingsRepository",
    "EntityRepository",
    "FixtureRepository",
    "ContestRepository",
    "MemberRepository",
    "NominationRepository",
]
