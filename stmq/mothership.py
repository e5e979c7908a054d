#!/usr/bin/env python3
import logging
import signal
import sys
import threading

from stmq.config import ConfigError, load_config
from stmq.dash import create_app
from stmq.dynamic_prices.price_source import price_source_from_config
from stmq.easee import easee_logger_from_config
from stmq.heating.control import HeatingDecisionEngine
from stmq.logs import setup_logging
from stmq.mqtt_handler import MqttHandler
from stmq.schedule import run_every
from stmq.temperatures import temperature_source_from_config

logger = logging.getLogger("stmq.mothership")

DECISION_INTERVAL_MINUTES = 15


def build_engine(config, publisher):
    return HeatingDecisionEngine(
        config,
        price_source_from_config(config),
        temperature_source_from_config(config),
        publisher,
    )


def start_thread(target, *args, **kwargs):
    thread = threading.Thread(target=target, args=args, kwargs=kwargs, daemon=True)
    thread.start()
    return thread


def main():
    try:
        config = load_config()
    except ConfigError as e:
        logging.basicConfig()
        logger.error(f"Error loading config: {e}")
        sys.exit(1)
    setup_logging(config.log_file, config.log_level)
    logger.info("Mothership starting...")

    mqtt = MqttHandler(config.mqtt.address, config.mqtt.user, config.mqtt.pw)
    mqtt.start()
    mqtt.log_topic(config.mqtt.receipt_topic)
    engine = build_engine(config, mqtt)
    stop = threading.Event()

    def shutdown(signum, frame):
        logger.info("Shutting down")
        stop.set()
        mqtt.stop()
        sys.exit(0)

    signal.signal(signal.SIGTERM, shutdown)
    signal.signal(signal.SIGINT, shutdown)

    control = start_thread(run_every, engine.adjust, DECISION_INTERVAL_MINUTES, stop, name="Heat adjustment")
    if config.easee.enabled:
        start_thread(run_every, easee_logger_from_config(config).poll, config.easee.interval_minutes, stop,
                     name="Easee query")
    else:
        logger.info("Easee poller not configured")

    if config.dashboard.enabled:
        app = create_app(engine, config.csv_path, config.zone)
        app.run(host=config.dashboard.host, port=config.dashboard.port)
    else:
        while control.is_alive():
            control.join(1)


if __name__ == "__main__":
    main()
