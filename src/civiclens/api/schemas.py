"""Pydantic response models for the CivicLens read API.

These are the API contract, decoupled from the internal domain dataclasses.
Route handlers bridge them with dataclasses.asdict().
"""

from datetime import date

from pydantic import BaseModel


class NeighborMatchResponse(BaseModel):
    record_id: str
    distance: float
    content: str


class SearchResponse(BaseModel):
    query: str
    k: int
    matches: list[NeighborMatchResponse]


class DailyCountResponse(BaseModel):
    category: str
    day: date
    count: int
    rolling_average: float | None = None


class HotspotCellResponse(BaseModel):
    latitude: float
    longitude: float
    category: str
    count: int
    geometry_wkt: str


class ErrorResponse(BaseModel):
    detail: str
