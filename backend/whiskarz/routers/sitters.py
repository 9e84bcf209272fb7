from fastapi import APIRouter

from whiskarz.models import Sitter
from whiskarz.routers.http_errors import raise_scheduling_http_error
from whiskarz.services.errors import SchedulingError
from whiskarz.services.sitter_directory import sitter_directory

router = APIRouter(prefix="/sitters", tags=["sitters"])


@router.get("", response_model=list[Sitter])
def list_active_sitters():
    return sitter_directory.list_active()


@router.post("", response_model=Sitter)
def register_sitter(sitter: Sitter):
    return sitter_directory.upsert(sitter)


@router.get("/{sitter_id}", response_model=Sitter)
def get_sitter(sitter_id: str):
    try:
        return sitter_directory.get(sitter_id)
    except SchedulingError as exc:
        raise_scheduling_http_error(exc)
