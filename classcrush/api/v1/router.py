from fastapi import APIRouter

from classcrush.api.v1.profiles import router as profiles_router
from classcrush.api.v1.matching import router as matching_router
from classcrush.api.v1.chat import router as chat_router

api_router = APIRouter()

# Include all route modules
api_router.include_router(profiles_router)
api_router.include_router(matching_router)
api_router.include_router(chat_router)
