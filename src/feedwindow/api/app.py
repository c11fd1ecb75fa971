"""FastAPI application entrypoint."""

from __future__ import annotations

from fastapi import FastAPI, Response
from fastapi.concurrency import run_in_threadpool

from feedwindow.api.routes import router, snapshot_response


def create_app() -> FastAPI:
    app = FastAPI(title="Feed Window", description="Merged RSS/ATOM articles from the last 48 hours")
    app.include_router(router, prefix="/api")

    @app.get("/")
    async def index() -> Response:
        return await run_in_threadpool(snapshot_response)

    return app


app = create_app()
