from fastapi import APIRouter, Depends

from app.auth.dependencies import AuthContext, require_backoffice
from app.dependencies import get_change_notifier
from app.observability import metrics_store
from app.schemas.metrics import MetricsResponse
from app.services.change_notifier import ChangeNotifier

router = APIRouter(prefix="/metrics", tags=["metrics"])


@router.get("", summary="Observability metrics", response_model=MetricsResponse)
def metrics_endpoint(
    notifier: ChangeNotifier = Depends(get_change_notifier),
    _auth: AuthContext = Depends(require_backoffice),
) -> MetricsResponse:
    """Counters and timings for backoffice consumers; requires OPS/ADMIN auth."""
    snapshot = metrics_store.snapshot()

    return MetricsResponse(
        counters=snapshot.counters or {},
        timings=snapshot.timings or {},
        change_feed_subscribers=notifier.subscriber_count,
    )
