"""
API v1 Router
=============

Main router that combines all API v1 endpoints.
"""

from fastapi import APIRouter

from philtree.api.v1.endpoints import branches, concepts

api_router = APIRouter()

api_router.include_router(concepts.router)
api_router.include_router(branches.router)
