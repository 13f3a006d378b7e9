"""Schemas for bookmark export/import."""

from __future__ import annotations

from pydantic import BaseModel


class ImportCountsSchema(BaseModel):
    collections: int
    groups: int
    items: int


class ImportResponse(BaseModel):
    message: str
    counts: ImportCountsSchema
