from __future__ import annotations

from flask import Flask, current_app
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine

from app.eventdesk.datastore import DataClient, SqlDataClient
from app.eventdesk.models import Base
from app.eventdesk.postgrest import RestDataClient


def build_engine(db_url: str, *, debug_checkout: bool = False, log=None) -> Engine:
    is_postgres = db_url.startswith("postgres")
    engine_kwargs: dict[str, object] = {
        "future": True,
        "pool_pre_ping": True,
    }
    if is_postgres:
        engine_kwargs.update(
            {
                "pool_recycle": 1800,
                "pool_size": 5,
                "max_overflow": 10,
                "pool_timeout": 30,
            }
        )
    engine = create_engine(db_url, **engine_kwargs)
    if debug_checkout and log is not None:
        @event.listens_for(engine, "checkout")
        def _receive_checkout(dbapi_connection, connection_record, connection_proxy):  # type: ignore[no-redef]
            log.debug("DB connection checkout from pool")
    return engine


def build_data_client(config: dict, engine: Engine | None = None) -> DataClient:
    backend = (config.get("DATA_BACKEND") or "sql").strip().lower()
    if backend == "postgrest":
        return RestDataClient(
            base_url=(config.get("SUPABASE_URL") or "").strip(),
            api_key=(config.get("SUPABASE_KEY") or "").strip(),
        )
    if engine is None:
        engine = build_engine(config["DATABASE_URL"])
    return SqlDataClient(engine, Base.metadata)


def init_db(app: Flask) -> None:
    """Construct the engine (SQL backend only) and the app-wide data client."""
    engine = None
    if (app.config.get("DATA_BACKEND") or "sql") != "postgrest":
        engine = build_engine(
            app.config["DATABASE_URL"],
            debug_checkout=app.config.get("ENV") != "production",
            log=app.logger,
        )
        app.extensions["sqlalchemy_engine"] = engine
    app.extensions["data_client"] = build_data_client(app.config, engine)


def data_client(app: Flask | None = None) -> DataClient:
    """The injected client; views pass it on to service functions."""
    if app is None:
        app = current_app
    return app.extensions["data_client"]
