"""
Remote Command Channel - MQTT listener for out-of-band unlock/lock.

Payloads: "unlock" / "lock" (any case) or JSON {"command": "unlock"}.
Anything else is reported and ignored.
"""

import json
import logging
from enum import Enum
from typing import Optional, Union

import paho.mqtt.client as mqtt

from ..exceptions import ActuatorError, MalformedInput
from ..storage.models import Outcome


logger = logging.getLogger(__name__)


class Command(Enum):
    UNLOCK = "unlock"
    LOCK = "lock"


def parse_command(payload: Union[bytes, str]) -> Command:
    """Validate a remote payload against the known command set."""
    if isinstance(payload, bytes):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedInput(f"Command payload is not UTF-8: {e}") from e

    text = payload.strip()
    if text.startswith("{"):
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise MalformedInput(f"Command payload is not valid JSON: {e}") from e
        if not isinstance(data, dict) or not isinstance(data.get("command"), str):
            raise MalformedInput("JSON command payload needs a string 'command' field")
        text = data["command"].strip()

    try:
        return Command(text.lower())
    except ValueError:
        raise MalformedInput(f"Unrecognized command {text[:64]!r}") from None


class RemoteCommandChannel:
    """
    Subscribes to the control topic and feeds commands to the engine.

    paho runs its own network thread (loop_start); each message is one
    callback invocation on that thread.
    """

    def __init__(
        self,
        engine,
        broker: str,
        port: int = 1883,
        topic: str = "smartlock/control",
        client_id: str = "smartlock",
        username: Optional[str] = None,
        password: Optional[str] = None,
    ):
        self.engine = engine
        self.broker = broker
        self.port = port
        self.topic = topic
        self.client_id = client_id
        self.username = username
        self.password = password

        self._client: Optional[mqtt.Client] = None
        self.connected = False

        self.stats = {
            "received": 0,
            "executed": 0,
            "rejected": 0,
            "failed": 0,
        }

    def handle_payload(self, payload: Union[bytes, str]) -> Optional[Command]:
        """
        Parse and execute one command.

        Returns:
            The executed command, or None when rejected or failed
        """
        self.stats["received"] += 1
        try:
            command = parse_command(payload)
        except MalformedInput as e:
            self.stats["rejected"] += 1
            logger.warning(f"Ignoring remote payload: {e}")
            return None

        try:
            if command is Command.UNLOCK:
                result = self.engine.remote_unlock()
                # Actuator failures come back as a logged denial, not an exception
                if result.event.outcome is Outcome.DENIED_ERROR:
                    raise ActuatorError(result.event.error)
            else:
                self.engine.remote_lock()
        except ActuatorError as e:
            self.stats["failed"] += 1
            logger.error(f"Remote {command.value} failed: {e}")
            return None

        self.stats["executed"] += 1
        return command

    # =========================
    # MQTT plumbing
    # =========================

    def start(self):
        client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=self.client_id,
            clean_session=True,
        )
        if self.username and self.password:
            client.username_pw_set(self.username, self.password)

        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message

        logger.info(f"Connecting to MQTT {self.broker}:{self.port} ...")
        client.connect_async(self.broker, port=self.port, keepalive=60)
        client.loop_start()
        self._client = client

    def stop(self):
        if self._client is None:
            return
        self._client.disconnect()
        self._client.loop_stop()
        self._client = None
        self.connected = False
        logger.info("MQTT channel stopped")

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        if reason_code.is_failure:
            logger.error(f"MQTT connect failed: {reason_code}")
            return
        self.connected = True
        client.subscribe(self.topic, qos=1)
        logger.info(f"MQTT connected, subscribed to {self.topic}")

    def _on_disconnect(self, client, userdata, flags, reason_code, properties):
        self.connected = False
        logger.warning(f"MQTT disconnected: {reason_code}")

    def _on_message(self, client, userdata, msg):
        try:
            self.handle_payload(msg.payload)
        except Exception:
            logger.exception(f"Error handling MQTT command on {msg.topic}")


def create_remote_channel_from_config(config, engine) -> RemoteCommandChannel:
    return RemoteCommandChannel(
        engine=engine,
        broker=config.MQTT_BROKER,
        port=config.MQTT_PORT,
        topic=config.MQTT_TOPIC,
        client_id=config.MQTT_CLIENT_ID,
        username=config.MQTT_USERNAME,
        password=config.MQTT_PASSWORD,
    )
