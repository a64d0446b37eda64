# vitalflow/mqtt/mqtt_client.py
import asyncio
import json
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Union

import aiomqtt

from vitalflow.core.config import settings

logger = logging.getLogger(__name__)

FireHandler = Callable[[int, Dict[str, Any]], Awaitable[Any]]


def fired_topic_filter() -> str:
    return f"{settings.MQTT_TOPIC_PREFIX}/reminders/+/fired"


def parse_fired_topic(topic: str) -> Optional[int]:
    """`{prefix}/reminders/{id}/fired` -> id, None for anything else."""
    prefix_parts = settings.MQTT_TOPIC_PREFIX.split("/")
    parts = topic.split("/")
    if len(parts) != len(prefix_parts) + 3 or parts[:len(prefix_parts)] != prefix_parts:
        return None
    section, reminder_id, action = parts[len(prefix_parts):]
    if section != "reminders" or action != "fired":
        return None
    try:
        return int(reminder_id)
    except ValueError:
        return None


class AsyncMQTTClient:
    def __init__(self, reconnect_interval: float = 5.0):
        self.client: Optional[aiomqtt.Client] = None
        self.fire_handler: Optional[FireHandler] = None
        self.reconnect_interval = reconnect_interval
        self._main_task: Optional[asyncio.Task] = None
        self._connected = asyncio.Event()
        self._handler_tasks: Set[asyncio.Task] = set()

    def is_connected(self) -> bool:
        return self.client is not None and self._connected.is_set()

    async def connect(self, timeout: float = 5.0):
        """Start the listener task and wait briefly for the first connection."""
        if self._main_task and not self._main_task.done():
            logger.info("[MQTT] Client is already running.")
            return

        logger.info(f"[MQTT] Attempting to connect to {settings.MQTT_BROKER_HOST}:{settings.MQTT_BROKER_PORT}...")
        self._connected = asyncio.Event()
        self._main_task = asyncio.create_task(self._main_loop())
        try:
            await asyncio.wait_for(self._connected.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[MQTT] Broker not reachable within {timeout}s, will keep retrying in the background")

    async def _main_loop(self):
        """Listen for fired events; reconnect after broker errors."""
        while True:
            try:
                async with aiomqtt.Client(
                    hostname=settings.MQTT_BROKER_HOST,
                    port=settings.MQTT_BROKER_PORT,
                    username=settings.MQTT_USERNAME,
                    password=settings.MQTT_PASSWORD,
                    identifier=f"{settings.MQTT_CLIENT_ID_PREFIX}{uuid.uuid4()}",
                ) as client:
                    self.client = client
                    self._connected.set()
                    logger.info("[MQTT] Successfully connected to Broker.")

                    await client.subscribe(fired_topic_filter(), qos=1)
                    logger.info(f"[MQTT] Subscribed to {fired_topic_filter()}")

                    async for message in client.messages:
                        await self._handle_message(message)
            except aiomqtt.MqttError as e:
                logger.error(f"[MQTT] Connection lost: {e}. Reconnecting in {self.reconnect_interval}s")
            finally:
                self.client = None
                self._connected.clear()
            await asyncio.sleep(self.reconnect_interval)

    async def _handle_message(self, message: aiomqtt.Message):
        topic = message.topic.value
        reminder_id = parse_fired_topic(topic)
        if reminder_id is None:
            logger.warning(f"[MQTT] No handler for topic '{topic}'")
            return

        payload_data: Dict[str, Any] = {}
        raw = message.payload
        if raw:
            try:
                decoded = json.loads(raw.decode() if isinstance(raw, (bytes, bytearray)) else raw)
            except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as e:
                logger.error(f"[MQTT] Failed to decode payload from topic {topic}: {e}")
                return
            if not isinstance(decoded, dict):
                logger.error(f"[MQTT] Expected a JSON object on {topic}, got {type(decoded).__name__}")
                return
            payload_data = decoded
        logger.debug(f"[MQTT] Fired event for reminder {reminder_id}: {payload_data}")

        if self.fire_handler is None:
            logger.warning(f"[MQTT] Fired event for reminder {reminder_id} dropped, no handler attached")
            return
        # one slow fire must not hold up the listener
        task = asyncio.create_task(self.fire_handler(reminder_id, payload_data))
        self._handler_tasks.add(task)
        task.add_done_callback(self._handler_tasks.discard)

    async def publish_message(self, topic: str, payload: Union[str, dict, list], qos: int = 1) -> bool:
        if not self.is_connected():
            logger.warning(f"[MQTT] Client not connected. Cannot publish to {topic}")
            return False
        message_str = json.dumps(payload) if isinstance(payload, (dict, list)) else str(payload)
        try:
            await self.client.publish(topic, message_str, qos=qos)
        except aiomqtt.MqttError as e:
            logger.error(f"[MQTT] Failed to publish to {topic}: {e}")
            return False
        logger.debug(f"[MQTT] Published to {topic}")
        return True

    async def disconnect(self):
        if self._main_task and not self._main_task.done():
            logger.info("[MQTT] Disconnecting client...")
            self._main_task.cancel()
            try:
                await self._main_task
            except asyncio.CancelledError:
                pass
            logger.info("[MQTT] Client disconnected.")
        self._main_task = None


mqtt_client = AsyncMQTTClient()


async def start_mqtt_client():
    if not settings.MQTT_ENABLED:
        logger.info("[MQTT] Disabled by configuration")
        return
    await mqtt_client.connect()


async def stop_mqtt_client():
    await mqtt_client.disconnect()
