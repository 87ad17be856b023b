import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from receiptsnap.config import settings
from receiptsnap.errors import ReceiptSnapError, receiptsnap_exception_handler

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)

app = FastAPI(
    title="ReceiptSnap API",
    description="Receipt capture, extraction and spend tracking",
    version="0.1.0"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(ReceiptSnapError, receiptsnap_exception_handler)


@app.get("/")
async def root():
    return {
        "message": "ReceiptSnap API",
        "version": "0.1.0",
        "status": "running"
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy"}

# Import routers
from receiptsnap.routers import capture, receipts, stats

# Include routers
app.include_router(capture.router)
app.include_router(receipts.router)
app.include_router(stats.router)
