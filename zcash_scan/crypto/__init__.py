"""Curve arithmetic and hash primitives for the Sapling and Orchard pools.

The implementations favour clarity over speed and are not constant time.
They only ever handle viewing-key material, never spending keys.
"""

from zcash_scan.crypto import jubjub, pallas
from zcash_scan.crypto.hashes import prf_expand, to_scalar

__all__ = [
    "jubjub",
    "pallas",
    "prf_expand",
    "to_scalar",
]
