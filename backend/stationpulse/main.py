"""
Station Pulse - FastAPI Application

Main entry point for the Station Pulse backend.

Architecture:
- Vote → Vote Store → Status Inference Policy (synchronous)
- Vote → Consensus Evaluator / Contradiction Detector → Reputation Ledger (background)
- Report → Report Store → Reputation Ledger (background)
- Station Confidence Estimator (read-only, feature-flagged)
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routers import stations_router, reports_router, reporters_router
from .database import init_db


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    init_db()
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="Station Pulse",
    description="""
    Station Pulse - Crowd-Verified Charging Station Status

    Anonymous reporters vote on whether a charging station is working.
    Votes become a station status decision and a per-reporter reputation.

    ## Pipeline
    1. **Vote Store**: one live vote per reporter and station per 30 minutes
    2. **Status Policy**: trusted-reporter override, else crowd supermajority
    3. **Reputation Ledger**: idempotent rewards and penalties, applied in the background
    4. **Station Confidence**: independent 0-100 reliability score (feature-flagged)

    ## Key Principles
    - Reputation events are append-only and are the only duplicate guard
    - Reputation level is always derived from, and written with, the score
    - Reputation failures never fail a vote or a report
    - Reporter reputation and station confidence are separate concepts
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(stations_router)
app.include_router(reports_router)
app.include_router(reporters_router)


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "Station Pulse",
        "version": "1.0.0",
        "description": "Crowd-Verified Charging Station Status",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": "1.0.0"}


# For running with: python -m stationpulse.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
