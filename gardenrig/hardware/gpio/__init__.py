from .pin import HIGH, LOW, DigitalPin, GPIOPin, MemoryPin, PinDirection, gpio_available, load_gpio

__all__ = [
    "HIGH",
    "LOW",
    "DigitalPin",
    "GPIOPin",
    "MemoryPin",
    "PinDirection",
    "gpio_available",
    "load_gpio",
]
