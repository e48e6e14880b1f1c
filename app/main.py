"""
HTTP Trigger for the Finance Migrator

A small FastAPI service the admin panel calls to start the migration.

ENDPOINTS:
- POST /migrate   Authenticated, privileged callers only. Runs the
                  migration and returns {"results": summary}.
- GET  /health    Configuration status.

ERROR RESPONSES are always {"error": "<message>"}:
- 401 missing or invalid session
- 403 session is valid but not an admin
- 500 the migration could not run (e.g. KV table unreadable)

Per-record failures are NOT errors here: they come back inside the
summary of a 200 response.
"""

from functools import lru_cache
from typing import Optional

import structlog
from fastapi import Depends, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from finance_migrator.config import get_settings, validate_all_settings
from finance_migrator.orchestrator import MigrationFlow, create_app_components
from finance_migrator.services.auth import AuthenticationError, AuthorizationError


logger = structlog.get_logger()


class ConfigurationError(Exception):
    """Components could not be created from the current settings."""
    pass


app_settings = get_settings().app

app = FastAPI(title="Finance Migrator", debug=app_settings.debug_mode)

app.add_middleware(
    CORSMiddleware,
    allow_origins=app_settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache()
def get_components():
    """Get or create application components (cached)."""
    return create_app_components(use_storage=True)


def get_migration_flow() -> MigrationFlow:
    try:
        flow, _ = get_components()
    except Exception as e:
        raise ConfigurationError(f"Migration service is not configured: {e}") from e
    return flow


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error("configuration_error", error=str(exc))
    return JSONResponse({"error": str(exc)}, status_code=500)


@app.post("/migrate")
async def migrate(
    authorization: Optional[str] = Header(default=None),
    flow: MigrationFlow = Depends(get_migration_flow),
):
    """Run the KV to relational migration."""
    try:
        summary = await flow.run(authorization)
    except AuthenticationError:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)
    except AuthorizationError:
        return JSONResponse({"error": "Forbidden"}, status_code=403)
    except Exception as e:
        logger.error("migration_error", error=str(e), error_type=type(e).__name__)
        return JSONResponse({"error": str(e) or "Migration failed"}, status_code=500)

    return {"results": summary.to_response()}


@app.get("/health")
async def health():
    """Report the environment and which settings groups load."""
    return {
        "status": "ok",
        "environment": app_settings.app_environment,
        "services": validate_all_settings(),
    }


def main():
    """Entry point for the finance-migrator-api command."""
    import uvicorn

    uvicorn.run(app, host=app_settings.api_host, port=app_settings.api_port)


if __name__ == "__main__":
    main()
