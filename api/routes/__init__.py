"""
API Routes Package

This module consolidates all API routes for the billing gateway service.
"""

from fastapi import APIRouter

from . import billings
from . import gateways

# Create main router
router = APIRouter()

# Include all route modules
router.include_router(billings.router, prefix="/billings", tags=["billings"])
router.include_router(gateways.router, prefix="/gateways", tags=["gateways"])

# Export for use in main application
__all__ = ["router"]
