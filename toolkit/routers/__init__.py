from fastapi import APIRouter

from toolkit.routers import assessments, catalog, duplicates, renewal_decisions, sync

api_router = APIRouter()
api_router.include_router(catalog.router)
api_router.include_router(sync.router)
api_router.include_router(duplicates.router)
api_router.include_router(assessments.router)
api_router.include_router(renewal_decisions.router)
