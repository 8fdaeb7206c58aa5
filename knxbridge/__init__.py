"""knxbridge - KNX field bus to MQTT protocol bridge."""

__version__ = "0.3.0"
