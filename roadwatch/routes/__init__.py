"""
Route registration for the Roadwatch API.
"""

from fastapi import FastAPI

from roadwatch.routes import (
    reports,
    police,
    notifications,
    rewards,
)


def register_routes(app: FastAPI) -> None:
    """Register all route modules with the FastAPI app."""
    app.include_router(reports.router)
    app.include_router(police.router)
    app.include_router(notifications.router)
    app.include_router(rewards.router)
