import logging
from uuid import uuid4
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from careops.config import settings
from careops.core.onboarding import WizardRegistry
from careops.database import engine, Base, SessionLocal
from careops.logging_config import configure_logging, reset_request_id, set_request_id
from careops.services.gateway import GatewayError
from careops.services.identity import IdentityProvider
from careops.services.sql_gateway import SqlAlchemyGateway

# Import all models
from careops.models import (
    User, Workspace, Contact, Service,
    Conversation, Message, InventoryItem
)

# Import routes
from careops.routes import auth, onboarding, public, inbox, inventory, settings as settings_routes

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Create database tables
Base.metadata.create_all(bind=engine)

# Create FastAPI app
app = FastAPI(
    title="CareOps Platform API",
    description="Onboarding, inbox and inventory for service businesses",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.state.gateway = SqlAlchemyGateway(SessionLocal)
app.state.identity = IdentityProvider(SessionLocal)
app.state.wizards = WizardRegistry(settings.WIZARD_CACHE_SIZE, settings.WIZARD_IDLE_SECONDS)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or uuid4().hex[:12]
    token = set_request_id(request_id)
    try:
        response = await call_next(request)
    finally:
        reset_request_id(token)
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    logger.error("Unhandled gateway failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": f"Data store unavailable ({exc.operation})"})


# Include routers
app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(onboarding.router, prefix="/api/onboarding", tags=["Onboarding"])
app.include_router(public.router, prefix="/api/public", tags=["Public"])
app.include_router(inbox.router, prefix="/api/inbox", tags=["Inbox"])
app.include_router(inventory.router, prefix="/api/inventory", tags=["Inventory"])
app.include_router(settings_routes.router, prefix="/api/settings", tags=["Settings"])


# Root endpoint
@app.get("/")
def root():
    return {
        "message": "CareOps Platform API",
        "status": "running",
        "docs": "/docs"
    }

# Health check
@app.get("/health")
def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}
