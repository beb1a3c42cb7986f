"""
The models package contains all the models used on the server.

.. autoclasstree:: psrental.models
"""

from .category import Category
from .device import Device
from .member import Member
from .payment import Payment
from .session import Session, SessionActivity
