"""
Generation client factory — maps GENERATION_BACKEND to a client instance.

Same idea as the storage registry: one place that knows every backend.
"""

from config.settings import Settings
from generation.base import AbstractGenerationClient
from generation.http_client import HttpGenerationClient
from generation.simulated import SimulatedGenerationClient


def _http(cfg: Settings) -> AbstractGenerationClient:
    return HttpGenerationClient(
        api_url=cfg.GENERATION_API_URL,
        api_key=cfg.GENERATION_API_KEY,
        model=cfg.GENERATION_MODEL,
        timeout=cfg.GENERATION_TIMEOUT,
    )


def _simulated(cfg: Settings) -> AbstractGenerationClient:
    return SimulatedGenerationClient(
        latency=cfg.SIMULATED_LATENCY,
        transient_failure_rate=cfg.SIMULATED_TRANSIENT_FAILURE_RATE,
        permanent_failure_rate=cfg.SIMULATED_PERMANENT_FAILURE_RATE,
    )


_REGISTRY = {
    "http": _http,
    "simulated": _simulated,
}


def create_generation_client(cfg: Settings) -> AbstractGenerationClient:
    """Build the client named by cfg.GENERATION_BACKEND. Raises ValueError if unknown."""
    factory = _REGISTRY.get(cfg.GENERATION_BACKEND)
    if factory is None:
        raise ValueError(
            f"Unknown generation backend: '{cfg.GENERATION_BACKEND}'. Available: {list(_REGISTRY)}"
        )
    return factory(cfg)
