# ================================
# FILE: healthcheck_service/api/routes.py
# ================================

from fastapi import APIRouter
from fastapi.responses import JSONResponse

router = APIRouter()


@router.get("/example")
async def api_example():
    """Example API endpoint"""
    return {"message": "API example response"}


@router.get("/fail")
async def api_fail():
    """Example endpoint that always fails"""
    return JSONResponse(status_code=500, content={"error": "Internal Server Error"})
