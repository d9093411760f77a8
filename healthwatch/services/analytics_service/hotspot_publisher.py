"""Hotspot event publisher.

Publishes an event to Kinesis when a location newly crosses the hotspot
threshold, so downstream notifiers (nurse's office, facilities) can react
without polling the dashboard. Publishing never fails a ranking cycle.
"""
import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
import uuid

from healthwatch.shared.models import HotspotData

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HotspotEvent:
    """Immutable hotspot-detected event."""
    event_id: str
    location_id: str
    risk_score: float
    report_count: int
    rank: int
    cycle_id: Optional[str] = None
    action_id: Optional[str] = None
    event_type: str = "analytics.hotspot.detected"
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_kinesis_payload(self) -> dict:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "timestamp": self.timestamp.isoformat() + "Z",
            "source": "analytics-service",
            "data": {
                "location_id": self.location_id,
                "risk_score": self.risk_score,
                "report_count": self.report_count,
                "rank": self.rank,
                "cycle_id": self.cycle_id,
                "action_id": self.action_id,
            }
        }


class HotspotEventPublisher:
    """Publishes hotspot events to a Kinesis stream."""

    def __init__(
        self,
        stream_name: str = "healthwatch-hotspot-events",
        enabled: bool = True,
        region: Optional[str] = None,
    ):
        self.stream_name = stream_name
        self.enabled = enabled
        self.region = region or os.getenv("AWS_REGION", "us-east-1")
        self._kinesis_client = None

        logger.info(
            "HOTSPOT_PUBLISHER_INITIALIZED",
            extra={"stream_name": stream_name, "enabled": enabled}
        )

    @property
    def kinesis_client(self):
        """Lazily created Kinesis client."""
        if self._kinesis_client is None and self.enabled:
            try:
                import boto3
                self._kinesis_client = boto3.client("kinesis", region_name=self.region)
            except Exception as e:
                logger.error("KINESIS_CLIENT_INIT_FAILED", extra={"error": str(e)})
        return self._kinesis_client

    def publish_hotspot(
        self,
        hotspot: HotspotData,
        cycle_id: Optional[str] = None,
        action_id: Optional[str] = None,
    ) -> bool:
        """Publish one hotspot-detected event.

        Returns:
            True if Kinesis accepted the record
        """
        if not self.enabled:
            logger.debug("HOTSPOT_PUBLISH_SKIPPED", extra={"reason": "disabled"})
            return False

        event = HotspotEvent(
            event_id=f"evt_{uuid.uuid4().hex[:12]}",
            location_id=hotspot.location_id,
            risk_score=hotspot.risk_score,
            report_count=hotspot.report_count,
            rank=hotspot.rank,
            cycle_id=cycle_id,
            action_id=action_id,
        )
        payload = event.to_kinesis_payload()

        try:
            if self.kinesis_client is None:
                logger.warning(
                    "HOTSPOT_EVENT_FALLBACK_LOG",
                    extra={"event_id": event.event_id, "payload": json.dumps(payload)}
                )
                return False

            response = self.kinesis_client.put_record(
                StreamName=self.stream_name,
                Data=json.dumps(payload),
                PartitionKey=hotspot.location_id,
            )
        except Exception as e:
            logger.error(
                "HOTSPOT_EVENT_PUBLISH_FAILED",
                extra={"event_id": event.event_id, "error": str(e)}
            )
            return False

        logger.info(
            "HOTSPOT_EVENT_PUBLISHED",
            extra={
                "event_id": event.event_id,
                "location_id": hotspot.location_id,
                "shard_id": response.get("ShardId"),
            }
        )
        return True
