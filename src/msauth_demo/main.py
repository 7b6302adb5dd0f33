"""Main FastAPI application for the Microsoft auth demo."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, HTTPException, status
from fastapi.responses import JSONResponse

from msauth_demo import __version__
from msauth_demo.config import ConfigurationError, get_settings
from msauth_demo.auth.flows import FLOW_TYPES, get_flow
from msauth_demo.auth.middleware import AuthenticatedUser, CurrentUser
from msauth_demo.auth.routes import router as auth_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting Microsoft auth demo...")

    # Session signing secret is required before serving anything
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    for name in FLOW_TYPES:
        try:
            flow = get_flow(name)
            logger.info(f"Flow {name} configured, redirect URI: {flow.config.redirect_uri}")
        except ConfigurationError as e:
            logger.warning(f"Flow {name} unavailable: {e}")

    yield

    logger.info("Shutting down Microsoft auth demo...")


# Create FastAPI application
app = FastAPI(
    title="Microsoft Auth Demo",
    description="OAuth2, Azure AD B2C and Entra ID (PKCE) sign-in with signed cookie sessions",
    version=__version__,
    lifespan=lifespan,
)

# Include authentication routes
app.include_router(auth_router)


# =============================================================================
# Health and Status Endpoints
# =============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "msauth-demo"}


@app.get("/")
async def home(user: CurrentUser, error: str | None = None):
    """Home view: the signed-in user, any sign-in error, and the login links."""
    return {
        "service": "Microsoft Auth Demo",
        "version": __version__,
        "user": {"name": user.name, "email": user.email} if user else None,
        "error": error,
        "login_urls": {name: f"/auth/{name}/login" for name in FLOW_TYPES},
        "logout_url": "/auth/logout",
    }


# =============================================================================
# Protected Endpoints (require authentication)
# =============================================================================

@app.get("/dashboard")
async def dashboard(user: AuthenticatedUser):
    """Protected view."""
    return {
        "message": f"Welcome, {user.name}!",
        "user": {
            "user_id": user.user_id,
            "email": user.email,
            "name": user.name,
        },
        "expires_at": user.expires_at,
        "token_expired": user.is_token_expired,
    }


# =============================================================================
# Error Handlers
# =============================================================================

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Custom HTTP exception handler."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail, "status_code": exc.status_code},
    )


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    """Incomplete configuration: details go to the log, not the client."""
    logger.error(f"Configuration error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "configuration_error", "status_code": 500},
    )


# =============================================================================
# Run with Uvicorn
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("msauth_demo.main:app", host="0.0.0.0", port=8000, reload=True)
