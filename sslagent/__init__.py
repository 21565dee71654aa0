"""sslagent - manage SSL keys and certificates for CA-enrolled hosts."""

__version__ = "1.0.0"
