from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ASRecord(BaseModel):
    """Autonomous system owning an address. Zero value means no AS data."""
    number: int = Field(0, ge=0, description="Autonomous system number")
    name: str = Field("", description="Organization that owns the AS")


class LocationRecord(BaseModel):
    """Geographic location; names are in the configured language or empty"""
    model_config = ConfigDict(populate_by_name=True)

    continent: str = ""
    continent_code: str = Field("", alias="continentCode")
    country: str = ""
    country_code: str = Field("", alias="countryCode")
    city: str = ""


class CombinedRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    as_: ASRecord = Field(default_factory=ASRecord, alias="as")
    location: LocationRecord = Field(default_factory=LocationRecord)


class ErrorResponse(BaseModel):
    error: str


class ReloadResponse(BaseModel):
    message: str


class ReloadErrorResponse(BaseModel):
    error: str
    message: str


class DatabaseStatus(BaseModel):
    path: str
    loaded_at: float
    generation: int
    database_type: Optional[str] = None
    build_epoch: Optional[int] = None
    ip_version: Optional[int] = None
    node_count: Optional[int] = None
    languages: List[str] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str
    language: str
    databases: Dict[str, DatabaseStatus]
