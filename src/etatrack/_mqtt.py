"""Internal MQTT position publisher.

Position records are written to one retained topic per participant, so a
subscriber joining late immediately receives everyone's latest position.
"""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
import threading
from collections.abc import Callable
from typing import Any, cast

import paho.mqtt.client as mqtt

from etatrack.config import MqttSettings
from etatrack.exceptions import EtaConfigError, EtaPublishError
from etatrack.models.position import PositionRecord

ClientFactory = Callable[[str], mqtt.Client]

_POSITION_QOS = 1


def position_topic(prefix: str, session_id: str, entity_id: str) -> str:
    """Topic of one entity's position record within a session."""
    return f"{prefix.rstrip('/')}/{session_id}/participants/{entity_id}"


def _paho_client(client_id: str) -> mqtt.Client:
    return mqtt.Client(
        callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
        client_id=client_id,
        protocol=mqtt.MQTTv5,
    )


class MqttPositionPublisher:
    """Publish retained position records through a threaded paho-mqtt client.

    ``start()`` connects and runs paho's network loop in its own thread;
    :meth:`publish` is awaited from the event loop and blocks an executor
    thread until the broker acknowledges the QoS 1 message.
    """

    def __init__(
        self,
        settings: MqttSettings,
        *,
        client_factory: ClientFactory | None = None,
        client_id: str | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if not settings.host:
            raise EtaConfigError("MQTT host is not configured")
        self._settings = settings
        self._client_factory = client_factory or _paho_client
        self._client_id = client_id or f"etatrack-{secrets.token_hex(6)}"
        self._log = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._connected = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._client is not None

    @property
    def is_connected(self) -> bool:
        """Whether the broker has accepted the connection (set from paho's thread)."""
        return self._connected.is_set()

    def _on_connect(self, _c: mqtt.Client, _userdata: Any, _flags: Any, reason_code: Any, _props: Any) -> None:
        if reason_code.is_failure:
            self._log.warning("MQTT broker %s refused connection: %s", self._settings.host, reason_code)
            return
        self._connected.set()
        self._log.debug("MQTT connected to %s:%s", self._settings.host, self._settings.port)

    def _on_disconnect(self, _c: mqtt.Client, _userdata: Any, _flags: Any, reason_code: Any, _props: Any) -> None:
        self._connected.clear()
        if self._client is not None:
            self._log.debug("MQTT connection to %s lost: %s", self._settings.host, reason_code)

    def start(self) -> None:
        """Connect to the configured broker; restarts if already running."""
        self.stop()
        settings = self._settings
        client = self._client_factory(self._client_id)
        client.enable_logger(self._log)
        if settings.username:
            client.username_pw_set(settings.username, settings.password)
        if settings.tls:
            client.tls_set()
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect

        self._log.debug(
            "MQTT publisher connecting host=%s port=%s client_id=%s",
            settings.host,
            settings.port,
            self._client_id,
        )
        client.connect(cast(str, settings.host), settings.port, keepalive=settings.keepalive)
        client.loop_start()
        self._client = client

    def stop(self) -> None:
        """Disconnect and join paho's network thread. Idempotent."""
        client, self._client = self._client, None
        if client is None:
            return
        self._connected.clear()
        try:
            client.disconnect()
        finally:
            client.loop_stop()
        self._log.debug("MQTT publisher stopped")

    async def publish(self, session_id: str, record: PositionRecord) -> None:
        """Publish *record* as the retained position of its entity.

        Raises
        ------
        EtaPublishError
            Not started, rejected by the client, or not acknowledged within
            ``publish_timeout`` seconds.
        """
        client = self._client
        if client is None:
            raise EtaPublishError("MQTT publisher is not started")

        topic = position_topic(self._settings.topic_prefix, session_id, record.id)
        body = json.dumps(record.to_wire(), separators=(",", ":"))
        info = client.publish(topic, body, qos=_POSITION_QOS, retain=True)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise EtaPublishError(f"MQTT publish to {topic} rejected: {mqtt.error_string(info.rc)}")

        try:
            await asyncio.get_running_loop().run_in_executor(
                None,
                info.wait_for_publish,
                self._settings.publish_timeout,
            )
        except (RuntimeError, ValueError) as exc:
            raise EtaPublishError(f"MQTT publish to {topic} failed: {exc}") from exc
        if not info.is_published():
            raise EtaPublishError(f"MQTT publish to {topic} not acknowledged")
        self._log.debug("MQTT position published topic=%s mid=%s", topic, info.mid)
