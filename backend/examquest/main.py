import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from examquest.api.v1.router import api_router
from examquest.core.config import Settings, get_settings
from examquest.core.logging import configure_logging
from examquest.db.init_db import init_db
from examquest.db.session import create_engine_and_sessionmaker
from examquest.services.catalog import ContentCatalog
from examquest.services.game_session import GameSessionRegistry
from examquest.services.outbox import MailOutbox
from examquest.services.profile_store import SqlProfileStore

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    app_settings = settings or get_settings()
    configure_logging(app_settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine, session_maker = create_engine_and_sessionmaker(app_settings.database_url)
        app.state.engine = engine
        app.state.session_maker = session_maker
        app.state.settings = app_settings
        await init_db(engine)

        catalog = ContentCatalog.from_file(app_settings.content_path)
        app.state.catalog = catalog
        app.state.outbox = MailOutbox()
        profile_store = SqlProfileStore(session_maker)
        app.state.profile_store = profile_store
        app.state.game_sessions = GameSessionRegistry(
            profile_store,
            app_settings,
            catalog,
        )
        logger.info("%s started (%s)", app_settings.app_name, app_settings.environment)
        yield
        await app.state.game_sessions.close()
        await engine.dispose()

    app = FastAPI(title=app_settings.app_name, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix=app_settings.api_v1_prefix)

    return app


app = create_app()
