from fastapi import APIRouter

from app.modules.library import router as library_router
from app.modules.library.router import CHECK_OVERDUE_BOOKS_PATH

API_V1_PREFIX = "/api/v1"
LIBRARY_PREFIX = "/library"

api_router = APIRouter()

api_router.include_router(library_router, prefix=LIBRARY_PREFIX, tags=["Library"])

# Routes that answer CORS themselves (allow-all, including preflight)
CORS_EXEMPT_PATHS = frozenset({f"{API_V1_PREFIX}{LIBRARY_PREFIX}{CHECK_OVERDUE_BOOKS_PATH}"})
