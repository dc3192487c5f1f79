"""Link transports."""

from codeless.transport.serial_link import SerialLink, PortInfo

__all__ = ['SerialLink', 'PortInfo']
