"""
ASN, GeoIP and combined lookup endpoints, plus database reloads
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..errors import ReloadError
from ..schemas import (
    ASRecord,
    CombinedRecord,
    ErrorResponse,
    LocationRecord,
    ReloadErrorResponse,
    ReloadResponse,
)
from ..service import LookupService
from .deps import get_service

router = APIRouter(tags=["lookup"], responses={500: {"model": ErrorResponse}})

RELOAD_FAILED_MESSAGE = "failed to load database; using previous one..."


def _reload_failed(e: ReloadError) -> JSONResponse:
    body = ReloadErrorResponse(error=str(e), message=RELOAD_FAILED_MESSAGE)
    return JSONResponse(status_code=500, content=body.model_dump())


# ASN
# Reload routes come first so "reload" is never taken for an address

@router.get("/asn/reload", response_model=ReloadResponse,
            responses={500: {"model": ReloadErrorResponse}})
def reload_asn(service: LookupService = Depends(get_service)):
    try:
        service.reload_asn()
    except ReloadError as e:
        return _reload_failed(e)
    return ReloadResponse(message="asn database reloaded successfully")


@router.get("/asn/{ip}", response_model=ASRecord)
def get_asn(ip: str, service: LookupService = Depends(get_service)):
    return service.resolve_as(ip)


# GeoIP data

@router.get("/geo/reload", response_model=ReloadResponse,
            responses={500: {"model": ReloadErrorResponse}})
def reload_geo(service: LookupService = Depends(get_service)):
    try:
        service.reload_geo()
    except ReloadError as e:
        return _reload_failed(e)
    return ReloadResponse(message="geoip database reloaded successfully")


@router.get("/geo/{ip}", response_model=LocationRecord)
def get_geo(ip: str, service: LookupService = Depends(get_service)):
    return service.resolve_location(ip)


# IP info (ASN + GeoIP combined)

@router.get("/ipinfo/{ip}", response_model=CombinedRecord)
def get_ipinfo(ip: str, service: LookupService = Depends(get_service)):
    return service.resolve_combined(ip)
