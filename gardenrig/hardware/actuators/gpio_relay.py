# Description: GPIO relay for the rig's pumps and fan.
#
import logging

from gardenrig.domain.exceptions import DeviceError
from gardenrig.hardware.gpio.pin import HIGH, LOW, DigitalPin, PinDirection

from .relay_base import RelayBase

logger = logging.getLogger(__name__)


class GPIORelay(RelayBase):
    """
    Controls a relay channel through a digital pin.

    The relay boards on the rig are active-low: the coil energizes when the
    pin is driven LOW. The pin is configured as an output already in the off
    state so a reboot never pulses a pump.

    Attributes:
        device (str): The name of the controlled device.
        pin (DigitalPin): The line wired to the relay input.
        active_low (bool): Drive LOW to energize.
    """

    def __init__(self, device: str, pin: DigitalPin, active_low: bool = True):
        super().__init__(device)
        self.pin = pin
        self.active_low = active_low
        self.pin.configure(PinDirection.OUTPUT, initial=self.off_level)
        logger.debug("Relay %s ready on GPIO %s (active %s)", device, pin.pin, "low" if active_low else "high")

    @property
    def on_level(self) -> int:
        return LOW if self.active_low else HIGH

    @property
    def off_level(self) -> int:
        return HIGH if self.active_low else LOW

    def turn_on(self) -> None:
        """Energize the load. Raises DeviceError if the pin cannot be driven."""
        self.pin.write(self.on_level)
        self.is_on = True
        logger.debug("Turned on relay %s on GPIO %s", self.device, self.pin.pin)

    def turn_off(self) -> bool:
        """
        De-energize the load.

        Safe to call from any thread and at any time; a write failure is
        logged rather than raised so shutoff paths never abort halfway.
        """
        try:
            self.pin.write(self.off_level)
        except DeviceError as e:
            logger.error("Error turning off relay %s: %s", self.device, e)
            return False
        self.is_on = False
        logger.debug("Turned off relay %s on GPIO %s", self.device, self.pin.pin)
        return True

    def cleanup(self) -> None:
        """Leave the load off and release the pin."""
        self.turn_off()
        self.pin.cleanup()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.cleanup()
