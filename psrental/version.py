"""
Version
-------

.. autodata:: psrental.version.__version__
"""

__version__ = "1.0.0"
"""The current version, also reported to sentry as the release."""

name = "psrental-server"
"""The name the app reports in its api docs."""
