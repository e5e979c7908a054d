import logging
from urllib.parse import urlparse

import paho.mqtt.client as mqtt

logger = logging.getLogger(__name__)

TLS_SCHEMES = ("mqtts", "ssl")


class MqttHandler:
    """Publish side of the actuator channel, plus logging of receipt topics."""

    def __init__(self, address, user="", password="", client=None):
        url = urlparse(address if "://" in address else f"mqtt://{address}")
        self.host = url.hostname
        self.port = url.port or (8883 if url.scheme in TLS_SCHEMES else 1883)
        self.logged_topics = {}
        self.client = client or mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)
        if url.scheme in TLS_SCHEMES:
            self.client.tls_set()
        if user:
            self.client.username_pw_set(user, password)
        self.client.on_connect = self.on_connect
        self.client.on_disconnect = self.on_disconnect
        self.client.on_message = self.on_message

    def start(self):
        # connect_async lets the network loop keep retrying while the broker is down
        self.client.connect_async(self.host, self.port, 60)
        self.client.loop_start()
        logger.info(f"MQTT client connecting to {self.host}:{self.port}")

    def stop(self):
        self.client.disconnect()
        self.client.loop_stop()

    def on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            logger.error(f"MQTT connection refused: {reason_code}")
            return
        logger.info("MQTT client connected")
        for topic, qos in self.logged_topics.items():
            self.subscribe(topic, qos)

    def on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        logger.warning(f"MQTT client offline: {reason_code}")

    def on_message(self, client, userdata, msg):
        if msg.topic in self.logged_topics:
            logger.info(f"MQTT received {msg.topic}:{msg.payload.decode(errors='replace')}")

    def subscribe(self, topic, qos):
        result, _ = self.client.subscribe(topic, qos)
        if result == mqtt.MQTT_ERR_SUCCESS:
            logger.info(f"MQTT subscribed to {topic} with QoS {qos}")
        else:
            logger.error(f"MQTT failed to subscribe to {topic}: {mqtt.error_string(result)}")

    def log_topic(self, topic, qos=2):
        self.logged_topics[topic] = qos
        if self.client.is_connected():
            self.subscribe(topic, qos)

    def post_trigger(self, topic, message, qos=1):
        info = self.client.publish(topic, message, qos=qos)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            logger.error(f"MQTT failed to publish {topic}:{message}: {mqtt.error_string(info.rc)}")
            return False
        logger.info(f"MQTT published {topic}:{message} with QoS {qos}")
        return True
