"""V1 API router aggregation."""

from fastapi import APIRouter

from homestead.api.v1.auth import router as auth_router
from homestead.api.v1.invitations import router as invitations_router
from homestead.api.v1.landlords import router as landlords_router
from homestead.api.v1.onboarding import router as onboarding_router
from homestead.api.v1.properties import router as properties_router

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(landlords_router)
v1_router.include_router(auth_router)
v1_router.include_router(invitations_router)
v1_router.include_router(onboarding_router)
v1_router.include_router(properties_router)
