from pathlib import Path
from typing import Optional

from fastapi import HTTPException, Request

from codeviz.services.git_scan import LocalGitProvider, validate_date_range
from codeviz.services.session import AppState

# Set by the CLI to the repository being viewed.
ROOT_PATH = Path.cwd()


def get_provider() -> LocalGitProvider:
    return LocalGitProvider(ROOT_PATH)


def get_session(request: Request) -> AppState:
    return request.app.state.session


def check_date_range(start_date: Optional[str], end_date: Optional[str]) -> None:
    """Reject a malformed date range with a 400 before any provider runs."""
    if not (start_date and end_date):
        return
    try:
        validate_date_range(start_date, end_date)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
