from contextlib import asynccontextmanager
from typing import Annotated

from dishka import AsyncContainer, FromComponent
from dishka.integrations.fastapi import inject, setup_dishka
from fastapi import FastAPI

from core.container import container
from core.exception_handler import register_exception_handlers
from eventpool.connection import ConnectionSupervisor
from eventpool.router import router as events_router

VERSION = "0.3.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await app.state.dishka_container.close()


async def root():
    """
    Root endpoint.

    Returns
    -------
    dict
        Application information
    """
    return {
        "name": "Event Pool Client",
        "version": VERSION,
        "description": "Gateway-resolved client for the blockchain event pool",
        "endpoints": {
            "history": "/api/events/history",
            "stream": "/api/events/stream",
            "docs": "/docs"
        }
    }


@inject
async def health(
    supervisor: Annotated[ConnectionSupervisor, FromComponent("eventpool")]
):
    """
    Health check endpoint.

    Reports the node connection without establishing it.

    Returns
    -------
    dict
        Health status
    """
    connection = supervisor.connection
    return {
        "status": "healthy",
        "version": VERSION,
        "connection": {
            "state": supervisor.state.value,
            "target": connection.target if connection else None
        }
    }


def create_app(app_container: AsyncContainer) -> FastAPI:
    """
    Create the FastAPI application around a container.

    Parameters
    ----------
    app_container : AsyncContainer
        Container holding the node connection

    Returns
    -------
    FastAPI
        Application
    """
    app = FastAPI(
        title="Event Pool Client",
        version=VERSION,
        description="Gateway-resolved client for the blockchain event pool",
        lifespan=lifespan,
    )

    setup_dishka(app_container, app)
    register_exception_handlers(app)

    app.add_api_route("/", root, methods=["GET"])
    app.add_api_route("/health", health, methods=["GET"])
    app.include_router(events_router)
    return app


app = create_app(container)
