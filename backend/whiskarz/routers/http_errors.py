from typing import NoReturn

from fastapi import HTTPException

from whiskarz.services.errors import (
    SchedulingConflictError,
    SchedulingError,
    SchedulingNotFoundError,
)


def raise_scheduling_http_error(exc: SchedulingError) -> NoReturn:
    if isinstance(exc, SchedulingNotFoundError):
        raise HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, SchedulingConflictError):
        raise HTTPException(status_code=409, detail=str(exc))
    raise HTTPException(status_code=400, detail=str(exc))
