"""Prometheus metrics for the HTTP layer and the room image workflow."""

from __future__ import annotations

from typing import Final

from fastapi import FastAPI
from prometheus_client import Counter
from prometheus_fastapi_instrumentator import Instrumentator, metrics

SWAP_OUTCOMES: Final[Counter] = Counter(
    "room_image_swaps_total",
    "Main image swap attempts grouped by outcome.",
    ["outcome"],
)

MAIN_IMAGE_PROMOTIONS: Final[Counter] = Counter(
    "room_image_promotions_total",
    "Rooms whose missing main image was repaired by promoting another image.",
)


def record_swap_outcome(outcome: str) -> None:
    SWAP_OUTCOMES.labels(outcome=outcome).inc()


def record_promotion() -> None:
    MAIN_IMAGE_PROMOTIONS.inc()


def setup_metrics(app: FastAPI) -> Instrumentator:
    """Register Prometheus instrumentation on the provided app."""

    instrumentator = Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=True,
    )
    instrumentator.add(metrics.default())
    instrumentator.add(metrics.latency())

    instrumentator.instrument(app)
    instrumentator.expose(app, include_in_schema=False)
    return instrumentator


__all__ = [
    "MAIN_IMAGE_PROMOTIONS",
    "SWAP_OUTCOMES",
    "record_promotion",
    "record_swap_outcome",
    "setup_metrics",
]
