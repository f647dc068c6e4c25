"""Battery management system logic: IC interface, protection state machine, state of charge,
LED and button handling, display layouts and configuration data objects."""

__version__ = "0.1.0"

__all__ = ["app", "bms", "button", "data_objects", "helper", "ic", "leds", "oled"]