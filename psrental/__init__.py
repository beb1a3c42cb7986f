"""
psrental
--------

Runs the consoles of a PlayStation rental shop: one timer per device,
members paying from a prepaid deposit, and every session billed from
its activity ledger.

All modules log through the package ``logger``.
"""

import logging

from psrental.config import server_mode
from psrental.version import __version__

logger = logging.getLogger(__name__)
handler = logging.StreamHandler()
handler.setFormatter(logging.Formatter('%(asctime)s %(name)-12s %(levelname)-8s %(message)s'))
logger.addHandler(handler)
logger.setLevel(logging.DEBUG if server_mode == "development" else logging.INFO)
