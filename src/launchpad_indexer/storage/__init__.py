"""Storage layer - Database schemas and repositories."""

from launchpad_indexer.storage.database import (
    DatabaseManager,
    create_async_db_engine,
    create_async_session_factory,
    init_async_db,
)
from launchpad_indexer.storage.models import (
    Base,
    CampaignModel,
    CandleModel,
    ChainCursorModel,
    StatSnapshotModel,
    TradeModel,
)
from launchpad_indexer.storage.repos import (
    CampaignDTO,
    CampaignRepository,
    CandleDTO,
    CandleRepository,
    ChainCursorRepository,
    StatSnapshotDTO,
    StatSnapshotRepository,
    TradeDTO,
    TradeRepository,
)

__all__ = [
    "Base",
    "CampaignDTO",
    "CampaignModel",
    "CampaignRepository",
    "CandleDTO",
    "CandleModel",
    "CandleRepository",
    "ChainCursorModel",
    "ChainCursorRepository",
    "DatabaseManager",
    "StatSnapshotDTO",
    "StatSnapshotModel",
    "StatSnapshotRepository",
    "TradeDTO",
    "TradeModel",
    "TradeRepository",
    "create_async_db_engine",
    "create_async_session_factory",
    "init_async_db",
]
