"""
Event Tracking Endpoints

Accepts user interaction events over HTTP and publishes them to the events
topic. The response does not wait for delivery or aggregation.
"""

from typing import List

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from analytics_pipeline.ingestion.events import AnalyticsEvent
from analytics_pipeline.pipeline import AnalyticsPipeline
from analytics_pipeline.serving.dependencies import get_pipeline

router = APIRouter()
logger = structlog.get_logger(__name__)


class TrackResponse(BaseModel):
    success: bool


class TrackBatchResponse(BaseModel):
    success: bool
    count: int


def _require_publisher(pipeline: AnalyticsPipeline):
    if pipeline.publisher is None or not pipeline.publisher.connected:
        raise HTTPException(status_code=503, detail="Event publisher unavailable")
    return pipeline.publisher


@router.post("/track", response_model=TrackResponse, status_code=status.HTTP_202_ACCEPTED)
async def track_event(
    event: AnalyticsEvent,
    pipeline: AnalyticsPipeline = Depends(get_pipeline),
) -> TrackResponse:
    """Track a single analytics event"""
    publisher = _require_publisher(pipeline)
    await publisher.publish(event)
    return TrackResponse(success=True)


@router.post("/track/batch", response_model=TrackBatchResponse, status_code=status.HTTP_202_ACCEPTED)
async def track_events_batch(
    events: List[AnalyticsEvent],
    pipeline: AnalyticsPipeline = Depends(get_pipeline),
) -> TrackBatchResponse:
    """Track multiple analytics events"""
    publisher = _require_publisher(pipeline)
    sent = await publisher.publish_batch(events)
    if sent < len(events):
        logger.warning("Some tracked events were not published", received=len(events), sent=sent)
    return TrackBatchResponse(success=True, count=len(events))
