# API router aggregation.
# Created: 2026-10-12
#
# mount_routers(app) registers every router at its canonical prefix. OAuth and
# discovery endpoints live at the site root because clients derive their paths
# from the issuer URL; first-party resource routes live under /api/v1/.

from __future__ import annotations

import importlib
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)

_ROUTERS: list[tuple[str, str, str]] = [
    # (module_path, prefix, tag)
    ("projectflow.api.v1.well_known", "", "Discovery"),
    ("projectflow.api.v1.oauth2", "", "OAuth2"),
    ("projectflow.api.v1.maintenance", "/api", "Maintenance"),
    ("projectflow.api.v1.dev_tokens", "/api", "Development"),
    ("projectflow.api.v1.identity", "/api/v1", "Identity"),
    ("projectflow.api.v1.gates", "/api/v1", "Gates"),
]


def mount_routers(app: FastAPI) -> None:
    """Mount all domain routers on *app*.

    Import failures propagate: a missing router would silently drop part of
    the authorization surface.
    """
    for module_path, prefix, tag in _ROUTERS:
        mod = importlib.import_module(module_path)
        app.include_router(mod.router, prefix=prefix)
        logger.debug("Mounted router: %s at %r (%s)", module_path, prefix or "/", tag)
