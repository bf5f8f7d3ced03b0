"""Channel-layer exceptions."""


class ChannelError(Exception):
    """Base class for channel failures."""


class ChannelConfigError(ChannelError, ValueError):
    """Missing or invalid credentials/configuration at construction time."""


class ChannelConnectError(ChannelError, ConnectionError):
    """The platform transport could not be established."""


class ChannelSendError(ChannelError):
    """A platform send primitive failed."""
