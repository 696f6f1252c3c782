"""
Abstract base class for the rig's relay-switched loads.

Pumps and the cooling fan are all switched through relay channels; the
RelayBase class defines the interface the control loops use to drive them.
"""


class RelayBase:
    """
    Abstract base class for all relay types.

    Attributes:
        device (str): The name of the device controlled by the relay.

    Methods:
        turn_on(): Energizes the load. Raises DeviceError on failure.
        turn_off(): De-energizes the load. Never raises; returns False on failure.
        get_device(): Returns the device name.
    """

    def __init__(self, device: str):
        self.device = device
        self.is_on = False

    def turn_on(self) -> None:
        raise NotImplementedError("Subclasses must implement turn_on method")

    def turn_off(self) -> bool:
        raise NotImplementedError("Subclasses must implement turn_off method")

    def get_device(self) -> str:
        return self.device
