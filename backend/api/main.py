"""
FastAPI application entry point.

Run with: uvicorn api.main:app --reload
"""
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pathlib import Path
from dotenv import load_dotenv
from starlette.middleware.base import BaseHTTPMiddleware

# Load environment variables from backend/.env (optional) before other imports that read env
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(env_path)

from api.routes import locations, map as map_routes
from db import init_db
from services.map_session import reset_default_map_session
from services.map_surface import MAP_OUTPUT_DIR


class PrivateNetworkAccessMiddleware(BaseHTTPMiddleware):
    """Middleware to handle Private Network Access preflight requests."""

    async def dispatch(self, request: Request, call_next):
        if request.method == "OPTIONS":
            response = Response(status_code=204)
            response.headers["Access-Control-Allow-Origin"] = "*"
            response.headers["Access-Control-Allow-Methods"] = "*"
            response.headers["Access-Control-Allow-Headers"] = "*"
            response.headers["Access-Control-Allow-Private-Network"] = "true"
            return response

        response = await call_next(request)
        response.headers["Access-Control-Allow-Private-Network"] = "true"
        return response


app = FastAPI(
    title="EcoAware Map API",
    description="Recycling, e-waste, hospital and flood shelter locations across Malaysia",
    version="0.1.0",
)

# Private Network Access middleware (must be before CORS)
app.add_middleware(PrivateNetworkAccessMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure properly for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Rendered map snapshots
MAP_OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
app.mount("/static/maps", StaticFiles(directory=str(MAP_OUTPUT_DIR)), name="maps")

app.include_router(locations.router, prefix="/locations", tags=["locations"])
app.include_router(map_routes.router, prefix="/map", tags=["map"])


@app.on_event("startup")
def startup_event():
    """Initialize database tables on startup."""
    init_db()


@app.on_event("shutdown")
def shutdown_event():
    """Tear down the map session so no pending render work touches it."""
    reset_default_map_session()


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "EcoAware Map API"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}
