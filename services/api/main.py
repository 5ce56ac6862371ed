"""API service for pipeline compilation and simulation."""

import os
import uvicorn
from fastapi import FastAPI
from services.api.routes.pipeline import router as pipeline_router
from services.api.routes.simulation import router as simulation_router
from services.api.middleware import CorrelationIdMiddleware
from shared.logging_config import setup_logging

setup_logging("api")

app = FastAPI(title="Pipeline Compiler API", version="1.0.0")
app.add_middleware(CorrelationIdMiddleware)

app.include_router(pipeline_router, tags=["Pipelines"])
app.include_router(simulation_router, tags=["Simulations"])


@app.get("/")
async def root():
    return {"service": "api", "status": "running"}


@app.get("/health")
async def health():
    return {"status": "healthy"}


if __name__ == "__main__":
    uvicorn.run(app, host=os.getenv("API_HOST", "0.0.0.0"), port=int(os.getenv("API_PORT", "8000")))
