"""API v1 router - aggregates all endpoint routers."""

from fastapi import APIRouter

from app.api.v1.tables import router as tables_router

api_router = APIRouter()

# Include all routers
api_router.include_router(tables_router)


@api_router.get("/")
async def api_info():
    """API information endpoint."""
    return {
        "name": "Activity Admin Tables API",
        "version": "1.0.0",
        "endpoints": {
            "tables": "/api/v1/tables",
        },
    }
