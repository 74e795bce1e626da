import redis
import json
from typing import Optional
import logging
from portal.core.config import settings
from portal.core.events import ALL_EVENTS, ChangeEvent, EventBus

logger = logging.getLogger(__name__)


class RedisNotificationService:
    """Fans change events out to a Redis pub/sub channel"""

    def __init__(self, redis_url: str = None, password: Optional[str] = None, channel: str = None):
        self.redis_url = redis_url or settings.redis_url
        self.password = password or settings.redis_password
        self.channel = channel or settings.change_notification_channel

        try:
            self.redis_client = redis.from_url(
                self.redis_url,
                password=self.password,
                decode_responses=True,
                socket_timeout=settings.redis_socket_timeout,
                socket_connect_timeout=settings.redis_socket_connect_timeout,
                max_connections=settings.redis_max_connections
            )

            # Test connection
            self.redis_client.ping()
            logger.info("Redis connection established successfully")

        except redis.RedisError as e:
            logger.error(f"Failed to connect to Redis: {str(e)}")
            self.redis_client = None

    def is_available(self) -> bool:
        """Check if Redis is available"""
        return self.redis_client is not None

    def publish_change(self, event: ChangeEvent) -> int:
        """Publish one change event; returns the number of Redis subscribers reached"""
        if not self.is_available():
            logger.warning(f"Redis unavailable, change {event.event_type} not published")
            return 0

        try:
            receivers = self.redis_client.publish(self.channel, json.dumps(event.to_dict()))
            logger.debug(f"Published {event.event_type} for employee {event.employee_id} to {receivers} subscriber(s)")
            return receivers
        except redis.RedisError as e:
            logger.error(f"Error publishing change {event.event_type}: {str(e)}")
            return 0

    def attach(self, bus: EventBus):
        """Subscribe this publisher to every event on ``bus``"""
        return bus.subscribe(ALL_EVENTS, self.publish_change)
