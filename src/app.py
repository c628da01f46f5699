"""SurplusLine FastAPI application.

Web server for the surplus core. Each request runs inside the surplus
domain context with the actor and path bound to its log lines.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from surplus.domain import surplus  # noqa: E402
from surplus.utils.logging import configure_logging, operation

configure_logging()
surplus.init()


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="SurplusLine API",
    description="Perishable-food donation matching, claiming and fulfillment",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the surplus domain context and per-request log context."""
    with operation(
        method=request.method,
        path=request.url.path,
        actor_id=request.headers.get("x-actor-id"),
        actor_role=request.headers.get("x-actor-role"),
    ):
        with surplus.domain_context():
            return await call_next(request)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from surplus.api import (  # noqa: E402
    billing_router,
    delivery_router,
    donation_router,
    operations_router,
    request_router,
)

app.include_router(donation_router)
app.include_router(request_router)
app.include_router(delivery_router)
app.include_router(billing_router)
app.include_router(operations_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(content={"status": "ok", "domain": {"name": surplus.name}})
