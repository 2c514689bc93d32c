from fastapi import APIRouter
from sapsync.api.v1.endpoints import sync

api_router = APIRouter()
api_router.include_router(sync.router, prefix="/sap", tags=["sap-sync"])
