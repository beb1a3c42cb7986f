"""
Members
-------

Members pay from a prepaid deposit and prove who they are with a PIN.
PINs are stored as argon2id hashes. Hashing is deliberately slow, so
it happens in an executor rather than on the event loop.
"""

import asyncio
from functools import partial
from typing import Union, Optional

import nacl.pwhash
from nacl.exceptions import InvalidkeyError, CryptPrefixError

from psrental.models import Member
from psrental.models.util import resolve_id


async def get_member(member: Union[Member, int], using_db=None) -> Optional[Member]:
    query = Member.filter(id=resolve_id(member))
    if using_db is not None:
        query = query.using_db(using_db)
    return await query.first()


async def hash_pin(pin: str) -> str:
    hashed = await _run_in_executor(
        nacl.pwhash.argon2id.str, pin.encode(),
        opslimit=nacl.pwhash.argon2id.OPSLIMIT_INTERACTIVE,
        memlimit=nacl.pwhash.argon2id.MEMLIMIT_INTERACTIVE,
    )
    return hashed.decode()


async def verify_pin(member: Member, pin: str) -> bool:
    """Checks a PIN against the member's stored hash."""
    if not member.pin_hash:
        return False

    try:
        return await _run_in_executor(nacl.pwhash.verify, member.pin_hash.encode(), str(pin).encode())
    except (InvalidkeyError, CryptPrefixError):
        return False


async def _run_in_executor(func, *args, **kwargs):
    return await asyncio.get_event_loop().run_in_executor(None, partial(func, *args, **kwargs))
