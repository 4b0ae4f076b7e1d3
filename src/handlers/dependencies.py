"""
Lazily built pipeline shared by every handler in a warm container.

The first call builds the service from the environment and indexes the
knowledge base; later invocations reuse the warm caches.
"""

from threading import Lock
from typing import Optional

from utils.logging_config import get_logger

logger = get_logger(__name__)

_orchestrator = None
_lock = Lock()


def get_orchestrator():
    """Return the shared OrchestrationService, building it on first use."""
    global _orchestrator
    if _orchestrator is None:
        with _lock:
            if _orchestrator is None:
                from services.orchestration_service import OrchestrationService

                service = OrchestrationService.from_environment()
                try:
                    service.reindex_knowledge()
                except Exception as exc:
                    # Triage still runs; retrieval reports the missing index.
                    logger.error("Initial knowledge reindex failed", extra={"error": str(exc)})
                _orchestrator = service
    return _orchestrator


def reset_orchestrator(service: Optional[object] = None) -> None:
    """Swap the shared service (tests) or drop it so the next call rebuilds."""
    global _orchestrator
    with _lock:
        previous, _orchestrator = _orchestrator, service
    if previous is not None and previous is not service:
        previous.shutdown()
