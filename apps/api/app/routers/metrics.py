from fastapi import APIRouter, Depends

from app.auth.dependencies import AuthContext, require_admin
from app.observability import metrics_store
from app.schemas.metrics import MetricsResponse

router = APIRouter(prefix="/metrics", tags=["metrics"])


@router.get("", summary="Operational counters and timings", response_model=MetricsResponse)
def metrics_endpoint(_auth: AuthContext = Depends(require_admin)) -> MetricsResponse:
    """Counters include rejected webhooks and invalid pickup codes for abuse monitoring."""
    snapshot = metrics_store.snapshot()
    return MetricsResponse(counters=snapshot.counters, timings=snapshot.timings)
