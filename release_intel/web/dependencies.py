"""FastAPI dependencies shared by the route modules."""

import hmac
import os
from typing import Annotated

from fastapi import Depends, Header, HTTPException

from release_intel.ingestion.pipeline import PipelineOrchestrator

ADMIN_TOKEN_ENV = "RELEASE_INTEL_ADMIN_TOKEN"


def require_admin_token(
    x_admin_token: Annotated[str | None, Header()] = None,
) -> None:
    """Dependency guarding admin routes with the shared ``X-Admin-Token``.

    Raises:
        HTTPException: 403 when the token is missing, wrong, or no token is
            configured on the server.
    """
    expected = os.environ.get(ADMIN_TOKEN_ENV)
    if not expected or not x_admin_token or not hmac.compare_digest(x_admin_token, expected):
        raise HTTPException(status_code=403, detail="Forbidden")


def get_orchestrator() -> PipelineOrchestrator:
    """Dependency returning a pipeline orchestrator.

    Tests override this through ``app.dependency_overrides``.
    """
    return PipelineOrchestrator()


# Type aliases for dependency injection
AdminDep = Depends(require_admin_token)
OrchestratorDep = Annotated[PipelineOrchestrator, Depends(get_orchestrator)]
