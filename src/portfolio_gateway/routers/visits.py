"""
Portfolio Gateway - Visit Counter Router
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ...shared.security import create_success_response, get_client_ip
from ..dependencies import get_visit_counter
from ..visits import VisitCounter

router = APIRouter()


@router.get("")
async def get_visit_count(counter: VisitCounter = Depends(get_visit_counter)) -> JSONResponse:
    return create_success_response(
        data={'count': counter.count},
        message="Visit count retrieved successfully"
    )


@router.post("")
async def record_visit(
    request: Request,
    counter: VisitCounter = Depends(get_visit_counter)
) -> JSONResponse:
    """Count a visit unless it comes from a bot or a recent visitor."""
    count, incremented = counter.record_visit(
        get_client_ip(request),
        request.headers.get("user-agent")
    )

    return create_success_response(
        data={'count': count, 'incremented': incremented},
        message="Visit recorded" if incremented else "Visit not counted"
    )
