"""devpair - client-side device pairing session coordinator."""

__version__ = "0.1.0"
