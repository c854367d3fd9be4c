from __future__ import annotations

from fastapi import FastAPI

from .context import AppContext
from .routes import create_app as build_routes_app

SYSTEM_VERSION = "0.3.0"


def create_app(ctx: AppContext | None = None) -> FastAPI:
    return build_routes_app(ctx)
