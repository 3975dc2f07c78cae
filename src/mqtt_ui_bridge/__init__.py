"""
mqtt_ui_bridge

This package provides a managed, asynchronous MQTT client that keeps a
single broker connection, performs topic subscriptions and bridges
incoming protocol events to an external notification sink.
"""
__version__ = "0.1.0"
