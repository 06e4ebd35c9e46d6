"""
Base class for temperature sensor drivers.
Provides the single-reading interface the control loop depends on.
"""

import logging

logger = logging.getLogger(__name__)


class TemperatureSensor:
    """
    Abstract base class for sensor drivers.
    All drivers should inherit from this and implement the read() method.
    """

    name = "temperature"

    def read(self) -> float:
        """
        Read the current temperature.

        Returns:
            float: Temperature in degrees Celsius.

        Raises:
            SensorError: If no valid reading could be obtained.
        """
        raise NotImplementedError("read() must be implemented by subclasses.")

    def cleanup(self) -> None:
        """
        Optional cleanup for hardware resources.
        """
        pass
