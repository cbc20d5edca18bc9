"""Shared router for checklist API endpoints."""

from __future__ import annotations

from fastapi import APIRouter

api_router = APIRouter(prefix="/api")
