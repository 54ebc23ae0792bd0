"""
Tutoring Marketplace Cart API - Main Application.

FastAPI application with CORS enabled for frontend communication.
"""

import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import __version__
from api.exception_handlers import register_exception_handlers

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Create FastAPI application
app = FastAPI(
    title="Tutoring Marketplace Cart API",
    description="Cart, checkout and entitlements for tutorials and recorded lessons",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# TODO: Restrict origins once the frontend host is fixed
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status and version.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "tutoring-marketplace-cart-api"
    }


@app.get("/", tags=["Root"])
def root():
    return {
        "message": "Tutoring Marketplace Cart API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


# Import and include routers
from api.routers import cart, checkout, entitlements, purchases

app.include_router(cart.router, prefix="/api/v1", tags=["Cart"])
app.include_router(checkout.router, prefix="/api/v1", tags=["Checkout"])
app.include_router(entitlements.router, prefix="/api/v1", tags=["Entitlements"])
app.include_router(purchases.router, prefix="/api/v1", tags=["Purchases"])
