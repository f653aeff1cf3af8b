from __future__ import annotations

import logging

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError

from src.api.routes import router
from src.config import settings
from src.models.db import init_db

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

app = FastAPI(
    title="chat_push_engine",
    description="Mobile push delivery for chat messages and calls",
    version="0.1.0",
    debug=settings.app_debug,
)


@app.on_event("startup")
def startup_event() -> None:
    if settings.token_store != "sql":
        return
    try:
        init_db()
        logging.info("Database initialization completed")
    except SQLAlchemyError as exc:
        logging.exception("Database initialization failed")
        raise RuntimeError("Database initialization failed") from exc


app.include_router(router)
