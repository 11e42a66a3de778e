from fastapi import Request

from ..service import LookupService


def get_service(request: Request) -> LookupService:
    return request.app.state.service
