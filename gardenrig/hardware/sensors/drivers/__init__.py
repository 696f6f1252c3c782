from .base import BaseSensorDriver, MemoryClimateSensor
from .dht22_sensor import DHT22Sensor

__all__ = ["BaseSensorDriver", "DHT22Sensor", "MemoryClimateSensor"]
