"""Function invocation router.

Mounted last under ``/api`` so that its ``/{name}`` route does not shadow the
other API routes.
"""

import time
from typing import Annotated, Any

from fastapi import APIRouter, Body, Header, Request

from funcbase.api.dependencies import FunctionServiceDep, OptionalUserIdDep
from funcbase.models.function import FunctionCall
from funcbase.settings import settings

router = APIRouter()


@router.post("/{name}")
async def invoke_function(
    name: str,
    request: Request,
    service: FunctionServiceDep,
    user_id: OptionalUserIdDep,
    call: Annotated[FunctionCall | None, Body()] = None,
    x_request_timeout: Annotated[float | None, Header(gt=0)] = None,
) -> dict[str, Any]:
    """Invoke a stored function.

    Args:
        name: Function name.
        request: Incoming request, checked for client disconnects between steps.
        service: Function service.
        user_id: Caller id from the bearer token, None when anonymous.
        call: Body carrying the caller's ``data``.
        x_request_timeout: Seconds the caller is willing to wait; defaults to
            ``function_timeout_seconds``.

    Returns:
        ``{"message": "success"}`` plus the rows of every fetch step, keyed by
        step name.

    Raises:
        FunctionNotFoundError: If the function does not exist (-> 404).
        PipelineExecutionError: If a step failed; the body names the step.
    """
    timeout = x_request_timeout or settings.function_timeout_seconds
    return await service.invoke(
        name,
        payload=call.data if call is not None else {},
        user_id=user_id,
        deadline=time.monotonic() + timeout,
        is_cancelled=request.is_disconnected,
    )
