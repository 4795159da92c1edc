"""API Endpoint Wrappers - Typed calls to the ops API"""

from typing import Any

from .base import APIClient
from ..utils.config_manager import config


class VerifyflowClient:
    """High-level client with typed endpoint methods"""

    def __init__(self, base_url: str | None = None):
        # Use config values if not provided
        api_config = config.load_config().get("api", {})
        final_base_url = base_url or api_config.get("base_url", "http://localhost:8000")

        self.api = APIClient(
            base_url=final_base_url,
            timeout=api_config.get("timeout", 30),
            headers=api_config.get("headers", {}),
        )

    def __enter__(self):
        self.api.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.api.__exit__(exc_type, exc_val, exc_tb)

    # Health Check
    def health_check(self) -> dict[str, Any]:
        """Check API and queue health"""
        return self.api.get("/healthz")

    # Queue Endpoints
    def list_queue_stats(self) -> dict[str, Any]:
        """Statistics for every queue"""
        return self.api.get("/queues")

    def get_queue_stats(self, queue_name: str) -> dict[str, Any]:
        return self.api.get(f"/queues/{queue_name}")

    def pause_queue(self, queue_name: str) -> dict[str, Any]:
        return self.api.post(f"/queues/{queue_name}/pause")

    def resume_queue(self, queue_name: str) -> dict[str, Any]:
        return self.api.post(f"/queues/{queue_name}/resume")

    def cleanup(self, grace_s: int | None = None) -> dict[str, Any]:
        """Purge old completed and failed jobs"""
        params = {"grace_s": grace_s} if grace_s is not None else None
        return self.api.post("/queues/cleanup", params=params)
