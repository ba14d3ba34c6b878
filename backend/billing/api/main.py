from fastapi import APIRouter

from billing.api.routes import bills

api_router = APIRouter()

# Health check endpoint
@api_router.get("/health-check/", tags=["health"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "billing-backend"}

# Include all API routes
api_router.include_router(bills.router)
