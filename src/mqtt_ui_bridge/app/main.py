"""
Main entry point for the MQTT UI Bridge host runner.

This module is responsible for:
- Parsing command-line arguments and the YAML configuration.
- Setting up logging.
- Wiring the MQTTManager to a queue-backed notification sink.
- Consuming notifications and logging them.
- Managing the overall application lifecycle (connect, signals, shutdown).
"""

import argparse
import asyncio
import logging
import signal

from typing import Dict, Any, Optional

from mqtt_ui_bridge.app.config_loader import load_config, load_profile
from mqtt_ui_bridge.client.errors import MQTTBridgeError
from mqtt_ui_bridge.client.models import Notification, NotificationKind
from mqtt_ui_bridge.client.mqtt import MQTTManager
from mqtt_ui_bridge.client.notifications import QueueSink
from mqtt_ui_bridge.client.payload import decode_preview


def level_from_name(name: str) -> int:
    level = getattr(logging, str(name).upper(), None)
    return level if isinstance(level, int) else logging.INFO


def setup_logging(level: str = "INFO"):
    """
    Configures the global logging settings for the entire application.
    This should be called as early as possible during startup.
    """
    logging.basicConfig(
        level=level_from_name(level),
        format='%(asctime)s [%(levelname)-8s] %(name)s.%(funcName)s: %(message)s'
    )

logger = logging.getLogger(__name__)


def describe(notification: Notification) -> str:
    """One log line for a notification."""
    if notification.kind is NotificationKind.CONNECTED:
        return "Broker acknowledged the connection."
    if notification.kind is NotificationKind.ERROR:
        return f"Connection ended: {notification.payload}"

    message = notification.payload
    preview = decode_preview(message.payload)
    if preview.is_json:
        shown = preview.json
    elif preview.is_text:
        shown = preview.text
    else:
        shown = f"<{preview.size} bytes>"
    return f"[{message.topic}] qos={message.qos} retained={message.retained}: {shown}"


async def notification_consumer(queue: asyncio.Queue):
    """Background task logging every notification the bridge emits."""
    logger.info("Notification consumer started.")
    try:
        while True:
            notification: Notification = await queue.get()
            if notification.kind is NotificationKind.ERROR:
                logger.error(describe(notification))
            else:
                logger.info(describe(notification))
            queue.task_done()
    except asyncio.CancelledError:
        logger.info("Notification consumer stopped.")
        raise


async def shutdown(signal_name: str, mqtt_manager: MQTTManager, stop_event: asyncio.Event):
    """Graceful shutdown handler."""
    logger.info(f"Received exit signal {signal_name}...")

    # Close the broker connection (this also stops its event bridge)
    try:
        await mqtt_manager.disconnect()
    except MQTTBridgeError as e:
        logger.error(f"Disconnect during shutdown failed: {e}")

    # Release the runner
    stop_event.set()


async def main_application_runner(config_path: str = "config.yaml"):
    setup_logging()
    logger.info("Starting MQTT UI Bridge...")

    # Load config
    config: Dict[str, Any] = load_config(config_path)
    if config.get("log_level"):
        logging.getLogger().setLevel(level_from_name(config["log_level"]))

    try:
        profile, subscriptions = load_profile(config)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return

    # Wire the manager to a queue the consumer task drains
    sink = QueueSink()
    mqtt_manager = MQTTManager(sink=sink)
    consumer_task = asyncio.create_task(notification_consumer(sink.queue))

    # Setup Signal Handlers for OS interrupts
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()
    shutdown_tasks = set()

    def on_signal(sig: signal.Signals):
        task = asyncio.create_task(shutdown(sig.name, mqtt_manager, stop_event))
        shutdown_tasks.add(task)
        task.add_done_callback(shutdown_tasks.discard)

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, on_signal, sig)

    try:
        await mqtt_manager.connect(profile, subscriptions)
        logger.info("Bridge is running. Press Ctrl+C to exit.")
    except MQTTBridgeError as e:
        # No automatic retry: the user restarts or fixes the config.
        logger.error(f"Connect failed: {e}")

    try:
        await stop_event.wait()
    finally:
        consumer_task.cancel()
        await asyncio.gather(consumer_task, return_exceptions=True)


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Bridge MQTT broker traffic to a notification consumer.")
    parser.add_argument("-c", "--config", default="config.yaml", help="path to the YAML config file")
    return parser.parse_args(argv)


def run():
    args = parse_args()
    try:
        asyncio.run(main_application_runner(args.config))
    except KeyboardInterrupt:
        # Handled by the signal handler, but good to catch here just in case.
        pass


if __name__ == "__main__":
    run()
