"""Prime field helpers shared by the Jubjub and Pallas implementations."""

from __future__ import annotations

from functools import lru_cache


def inverse(value: int, modulus: int) -> int:
    """Multiplicative inverse, with ``inv(0) == 0`` as the hash-to-curve drafts define."""

    value %= modulus
    if value == 0:
        return 0
    return pow(value, -1, modulus)


def is_square(value: int, modulus: int) -> bool:
    value %= modulus
    return value == 0 or pow(value, (modulus - 1) // 2, modulus) == 1


@lru_cache(maxsize=None)
def _tonelli_shanks_setup(modulus: int) -> tuple[int, int, int]:
    s = 0
    t = modulus - 1
    while t % 2 == 0:
        t //= 2
        s += 1
    z = 2
    while is_square(z, modulus):
        z += 1
    return s, t, pow(z, t, modulus)


def sqrt(value: int, modulus: int) -> int | None:
    """Square root modulo an odd prime, or ``None`` for non-residues."""

    value %= modulus
    if value == 0:
        return 0
    if not is_square(value, modulus):
        return None
    s, t, c = _tonelli_shanks_setup(modulus)
    m = s
    x = pow(value, (t + 1) // 2, modulus)
    b = pow(value, t, modulus)
    while b != 1:
        i = 1
        b2 = b * b % modulus
        while b2 != 1:
            b2 = b2 * b2 % modulus
            i += 1
        e = pow(c, 1 << (m - i - 1), modulus)
        x = x * e % modulus
        c = e * e % modulus
        b = b * c % modulus
        m = i
    return x
