"""API v1 routes."""

from fastapi import APIRouter

from tablegraph.api.v1 import fields, relations, rows, tables

router = APIRouter()

router.include_router(tables.router, tags=["tables"])
router.include_router(fields.router, tags=["fields"])
router.include_router(rows.router, tags=["rows"])
router.include_router(relations.router, tags=["relations"])
