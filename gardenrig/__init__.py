"""
Garden rig drip irrigation controller.

Reads soil moisture and water level sensors, runs the tank and pot pumps and
the cooling fan, and keeps a bounded history for daily watering limits.
"""

__version__ = "1.0.0"
