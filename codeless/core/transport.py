"""Collaborator interfaces used by the command engine.

The engine never touches the link itself. It hands outbound text and
inbound replies to a LinkTransport, and asks a ValueProvider for the
host values that inbound queries report.
"""

from abc import ABC, abstractmethod
from typing import Optional, Tuple


class LinkTransport(ABC):
    """Line-oriented link to the peer.

    Implementations frame and write the text; the engine only decides
    what to send.
    """

    @abstractmethod
    def send_text(self, text: str) -> None:
        """Send one outbound command line."""

    @abstractmethod
    def reply_success(self, text: Optional[str] = None) -> None:
        """Answer the current inbound command with optional response text and OK."""

    @abstractmethod
    def reply_error(self, message: str) -> None:
        """Answer the current inbound command with an error message and ERROR."""


class ValueProvider:
    """Host values reported to the peer by inbound query commands.

    Every getter returns None when the value is not available. The base
    class provides nothing; override the getters the host can answer.
    """

    def device_information(self) -> Optional[str]:
        return None

    def battery_level(self) -> Optional[int]:
        return None

    def bluetooth_address(self) -> Optional[str]:
        return None

    def gap_status(self) -> Optional[Tuple[int, bool]]:
        """GAP role (0 peripheral, 1 central) and connection status."""
        return None

    def random_number(self) -> Optional[int]:
        return None


class StaticValueProvider(ValueProvider):
    """ValueProvider returning fixed values.

    Example:
        >>> provider = StaticValueProvider(battery_level=80)
        >>> provider.battery_level()
        80
    """

    def __init__(self,
                 device_information: Optional[str] = None,
                 battery_level: Optional[int] = None,
                 bluetooth_address: Optional[str] = None,
                 gap_status: Optional[Tuple[int, bool]] = None,
                 random_number: Optional[int] = None):
        self._values = {
            'device_information': device_information,
            'battery_level': battery_level,
            'bluetooth_address': bluetooth_address,
            'gap_status': gap_status,
            'random_number': random_number,
        }

    def device_information(self) -> Optional[str]:
        return self._values['device_information']

    def battery_level(self) -> Optional[int]:
        return self._values['battery_level']

    def bluetooth_address(self) -> Optional[str]:
        return self._values['bluetooth_address']

    def gap_status(self) -> Optional[Tuple[int, bool]]:
        return self._values['gap_status']

    def random_number(self) -> Optional[int]:
        return self._values['random_number']
