"""API v1 main router.

Aggregates all v1 API routers into a single router for inclusion in the app.
"""

from fastapi import APIRouter

from booksage.api.v1.admin import router as admin_router
from booksage.api.v1.books import router as books_router
from booksage.api.v1.feedback import router as feedback_router
from booksage.api.v1.recommendations import router as recommendations_router
from booksage.api.v1.users import router as users_router

router = APIRouter()

# Include sub-routers
router.include_router(
    recommendations_router, prefix="/recommendations", tags=["Recommendations"]
)
router.include_router(books_router, prefix="/books", tags=["Books"])
router.include_router(feedback_router, prefix="/feedback", tags=["Feedback"])
router.include_router(users_router, prefix="/users", tags=["Users"])
router.include_router(admin_router, prefix="/admin", tags=["Admin"])
