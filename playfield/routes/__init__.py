"""
playfield/routes
HTTP surface of the scoring core, mounted under /api by main.py.
"""
from fastapi import APIRouter

from playfield.routes import auth, challenges, matches, scoring, tournaments

api_router = APIRouter()
api_router.include_router(auth.router)
api_router.include_router(challenges.router)
api_router.include_router(matches.router)
api_router.include_router(scoring.router)
api_router.include_router(tournaments.router)
