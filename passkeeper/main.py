# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
FastAPI application factory for the local vault API.

Responsibilities
----------------
* Build the vault components once per process (lifespan) and hang them on
  ``app.state``: session factory, secure store, key material, cipher,
  transactional store, user, credential and export/import services.
* Register CORS and request-logging middleware.
* Mount the auth and vault routers.
* Expose a /health endpoint for liveness checks.

Run with:
    uvicorn passkeeper.main:app --host 127.0.0.1 --port 8000
"""

import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from starlette.middleware.base import BaseHTTPMiddleware

from passkeeper import __version__
from passkeeper.auth.router import router as auth_router
from passkeeper.auth.service import UserService
from passkeeper.core.cipher import SecretCipher
from passkeeper.core.config import settings
from passkeeper.core.keys import KeyMaterialService
from passkeeper.core.logger import logger
from passkeeper.core.secure_store import FileSecureStore, SecureStore
from passkeeper.core.transactions import TransactionalStore
from passkeeper.database import engine as default_engine
from passkeeper.database import init_db, make_engine, make_session_factory
from passkeeper.vault.credentials import CredentialService
from passkeeper.vault.router import router as vault_router
from passkeeper.vault.service import ExportImportService

# ---------------------------------------------------------------------------
# Request-logging middleware
# ---------------------------------------------------------------------------
# Logs every inbound request: method, path, client IP, status, latency.
# Bodies carry passwords and envelopes and are never echoed.


class _RequestLogMiddleware(BaseHTTPMiddleware):
    """Log method, path, client IP, response status and latency (ms)."""

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.perf_counter()
        response: Response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000

        client_ip = request.client.host if request.client else "unknown"

        logger.info(
            "%s %s | client=%s status=%d latency=%.1fms",
            request.method,
            request.url.path,
            client_ip,
            response.status_code,
            elapsed_ms,
        )
        return response


def create_app(
    database_url: Optional[str] = None,
    secure_store: Optional[SecureStore] = None,
    export_dir: Optional[str] = None,
) -> FastAPI:
    """
    Build the app.  Every argument defaults to ``settings``; tests pass a
    temporary database and an in-memory secure store.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = make_engine(database_url) if database_url else default_engine
        await init_db(engine)

        session_factory = make_session_factory(engine)
        store = TransactionalStore(session_factory)
        keys = KeyMaterialService(secure_store or FileSecureStore(settings.secure_store_dir))

        cipher = SecretCipher()

        app.state.session_factory = session_factory
        app.state.user_service = UserService(store, keys, cipher)
        app.state.credential_service = CredentialService(store, keys, cipher)
        app.state.vault_service = ExportImportService(store, keys, cipher, export_dir=export_dir)
        logger.info("PassKeeper vault service starting up")
        try:
            yield
        finally:
            logger.info("PassKeeper vault service shutting down")
            await engine.dispose()

    app = FastAPI(title="PassKeeper Vault", version=__version__, lifespan=lifespan)

    # -----------------------------------------------------------------------
    # CORS
    # -----------------------------------------------------------------------
    # The UI talks to this service from the same machine only.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:8000", "http://127.0.0.1:8000"],
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Authorization", "Content-Type"],
    )
    app.add_middleware(_RequestLogMiddleware)

    # -----------------------------------------------------------------------
    # Routers
    # -----------------------------------------------------------------------
    app.include_router(auth_router)
    app.include_router(vault_router)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()
