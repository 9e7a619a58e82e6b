"""Service container shared by the API routers."""
from dataclasses import dataclass
from typing import Any

from fastapi import Request

from folder_search_server.services.config_service import ConfigService
from folder_search_server.services.database import Database
from folder_search_server.services.events import EventBus
from folder_search_server.services.indexing_service import IndexingService
from folder_search_server.services.search_service import SearchService


@dataclass
class Services:
    """Everything built around one Database instance."""
    db: Database
    events: EventBus
    indexing: IndexingService
    search: SearchService
    config: ConfigService


def build_services(db: Database, **indexing_options: Any) -> Services:
    """Wire the engines around an explicitly owned database."""
    events = EventBus()
    return Services(
        db=db,
        events=events,
        indexing=IndexingService(db, events=events, **indexing_options),
        search=SearchService(db),
        config=ConfigService(db),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
