"""
PYQ Predictor API - Main Application
FastAPI application for the question bank.
Ingests previous-year papers, analyzes question patterns, and predicts likely questions.
"""

from dotenv import load_dotenv
load_dotenv()

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from database.database import engine, Base
from routers import analysis, exams, predictions, semesters, subjects

# Standard logger so pipeline output appears in the uvicorn console
logging.basicConfig(level=logging.INFO, format="%(asctime)s  %(levelname)s  %(message)s")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: create tables."""
    Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(
    title="PYQ Predictor API",
    description="Previous-year question ingestion, pattern analysis, and question prediction",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ─── Routers ───────────────────────────────────────────────────────────────────

# Academic structure
app.include_router(subjects.router)
app.include_router(semesters.router)

# Question bank
app.include_router(exams.router)             # /pyq/*

# Analysis + prediction
app.include_router(analysis.router)
app.include_router(predictions.router)


@app.get("/")
def root():
    return {
        "name": "PYQ Predictor API",
        "version": "1.0.0",
        "endpoints": {
            "docs": "/docs",
            "subjects": "/subjects",
            "semesters": "/semesters",
            "pyq": "/pyq",
            "analysis": "/analysis",
            "predictions": "/predictions",
        },
    }


@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "pyq-predictor-api"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
