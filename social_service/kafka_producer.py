"""
Kafka producer for publishing follow and message events
"""
from aiokafka import AIOKafkaProducer
from typing import Optional, Dict, Any
import json
import logging
from datetime import datetime, timezone

from .config import settings

logger = logging.getLogger(__name__)


class KafkaProducerManager:
    """Kafka producer manager for publishing events"""

    def __init__(self):
        self.producer: Optional[AIOKafkaProducer] = None

    async def start(self):
        """Start Kafka producer"""
        if not settings.KAFKA_ENABLED:
            logger.info("Kafka is disabled")
            return

        try:
            self.producer = AIOKafkaProducer(
                bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
                value_serializer=lambda v: json.dumps(v).encode("utf-8"),
                key_serializer=lambda v: str(v).encode("utf-8") if v else None,
            )
            await self.producer.start()
            logger.info("Kafka producer started successfully")
        except Exception as e:
            logger.warning(f"Failed to start Kafka producer: {e}. Continuing without Kafka.")
            self.producer = None

    async def stop(self):
        """Stop Kafka producer"""
        if self.producer:
            await self.producer.stop()
            self.producer = None
            logger.info("Kafka producer stopped")

    async def publish_event(self, topic: str, key: str, event_data: Dict[str, Any]):
        """
        Publish event to Kafka topic

        Args:
            topic: Kafka topic name
            key: Message key (usually user_id)
            event_data: Event data to publish
        """
        if not self.producer:
            logger.debug(f"Kafka disabled, skipping event: {topic}")
            return

        try:
            await self.producer.send(topic, value=event_data, key=key)
            logger.info(f"Published event to {topic}: {key}")
        except Exception as e:
            logger.error(f"Error publishing event to {topic}: {e}")

    def _event(self, event_type: str, **fields) -> Dict[str, Any]:
        return {
            "event_type": event_type,
            **fields,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    # Follow events
    async def publish_follow_requested_event(self, request_id: int, from_user_id: int, to_user_id: int):
        event_data = self._event(
            "follow_requested",
            request_id=request_id,
            from_user_id=from_user_id,
            to_user_id=to_user_id,
        )
        await self.publish_event(settings.KAFKA_TOPIC_FOLLOW_REQUESTED, str(to_user_id), event_data)

    async def publish_follow_accepted_event(self, request_id: int, follower_id: int, followee_id: int):
        event_data = self._event(
            "follow_accepted",
            request_id=request_id,
            follower_id=follower_id,
            followee_id=followee_id,
        )
        await self.publish_event(settings.KAFKA_TOPIC_FOLLOW_ACCEPTED, str(follower_id), event_data)

    async def publish_follow_declined_event(self, request_id: int, from_user_id: int, to_user_id: int):
        event_data = self._event(
            "follow_declined",
            request_id=request_id,
            from_user_id=from_user_id,
            to_user_id=to_user_id,
        )
        await self.publish_event(settings.KAFKA_TOPIC_FOLLOW_DECLINED, str(from_user_id), event_data)

    async def publish_follow_removed_event(self, follower_id: int, followee_id: int, previous_state: str):
        """Publish unfollow or cancelled-request event"""
        event_data = self._event(
            "follow_removed",
            follower_id=follower_id,
            followee_id=followee_id,
            previous_state=previous_state,
        )
        await self.publish_event(settings.KAFKA_TOPIC_FOLLOW_REMOVED, str(follower_id), event_data)

    # Message events
    async def publish_message_sent_event(self, message_id: int, from_user_id: int, to_user_id: int):
        event_data = self._event(
            "message_sent",
            message_id=message_id,
            from_user_id=from_user_id,
            to_user_id=to_user_id,
        )
        await self.publish_event(settings.KAFKA_TOPIC_MESSAGE_SENT, str(to_user_id), event_data)

    async def publish_messages_read_event(self, viewer_id: int, counterpart_id: int, count: int):
        event_data = self._event(
            "messages_read",
            viewer_id=viewer_id,
            counterpart_id=counterpart_id,
            count=count,
        )
        await self.publish_event(settings.KAFKA_TOPIC_MESSAGE_READ, str(counterpart_id), event_data)


# Global producer instance
kafka_producer = KafkaProducerManager()


async def get_kafka_producer() -> KafkaProducerManager:
    """Dependency for getting Kafka producer instance"""
    return kafka_producer
