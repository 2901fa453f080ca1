"""Health check endpoint."""
from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
def health(request: Request) -> dict[str, str]:
    """Health check for load balancer / Docker; also reports the store backend in use."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    store = type(orchestrator.store).__name__ if orchestrator is not None else "none"
    return {"status": "ok", "store": store}
