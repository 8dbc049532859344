"""
Rosbridge mirror: publishes engine state to ROS topics for map/dashboard nodes.

Incident list snapshots go to `/dispatch/incidents` whenever an incident is
created, changes status or is removed; each new notification goes to
`/dispatch/notifications`. Both are JSON in a `std_msgs/msg/String`.
If rosbridge is unreachable the service keeps running in API-only mode.
"""

from __future__ import annotations

import json
import logging

import roslibpy

from .config import INCIDENT_TOPIC, NOTIFICATION_TOPIC, ROSBRIDGE_HOST, ROSBRIDGE_PORT
from .engine import DispatchEngine
from .models import EventKind, LifecycleEvent, NotificationEvent

logger = logging.getLogger("dispatch.publisher")

INCIDENT_EVENTS = {EventKind.INCIDENT_CREATED, EventKind.INCIDENT_STATUS, EventKind.INCIDENT_REMOVED}


class RosbridgePublisher:
    def __init__(self, engine: DispatchEngine, host: str = ROSBRIDGE_HOST, port: int = ROSBRIDGE_PORT):
        self.engine = engine
        self.host = host
        self.port = port
        self.ros_client = None
        self.incident_topic = None
        self.notification_topic = None
        self._unsubscribe = []

    @property
    def connected(self) -> bool:
        return bool(self.ros_client is not None and self.ros_client.is_connected)

    def connect(self, timeout: float = 5) -> bool:
        """Connect and advertise topics. Blocking; run it off the event loop."""
        try:
            self.ros_client = roslibpy.Ros(host=self.host, port=self.port)
            self.ros_client.run(timeout=timeout)
            self.incident_topic = roslibpy.Topic(self.ros_client, INCIDENT_TOPIC, "std_msgs/msg/String")
            self.notification_topic = roslibpy.Topic(self.ros_client, NOTIFICATION_TOPIC, "std_msgs/msg/String")
            logger.info(f"Connected to rosbridge at {self.host}:{self.port}")
        except Exception as e:
            logger.warning(f"Failed to connect to rosbridge: {e}")
            logger.warning("Running without rosbridge (API-only mode)")
            self.ros_client = None
            return False
        self._unsubscribe = [
            self.engine.on_lifecycle_event(self._on_lifecycle),
            self.engine.on_notification(self._on_notification),
        ]
        self.publish_incidents()
        return True

    def publish_incidents(self):
        if not self.connected or self.incident_topic is None:
            return
        data = [incident.model_dump(mode="json") for incident in self.engine.incidents()]
        self.incident_topic.publish(roslibpy.Message({"data": json.dumps(data)}))

    def _on_lifecycle(self, event: LifecycleEvent):
        if event.kind in INCIDENT_EVENTS:
            self.publish_incidents()

    def _on_notification(self, notification: NotificationEvent):
        if not self.connected or self.notification_topic is None:
            return
        self.notification_topic.publish(roslibpy.Message({"data": notification.model_dump_json()}))

    def close(self):
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []
        if self.ros_client is not None:
            self.ros_client.terminate()
            self.ros_client = None
