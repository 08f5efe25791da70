"""
Time-ordered identifiers: `<prefix>_<26 char ULID>`.

A ULID is a 48-bit millisecond timestamp followed by 80 random bits, encoded
with Crockford's base32. Ids generated by one `IDGenerator` sort lexically in
creation order, including ids created within the same millisecond (the random
part is incremented instead of redrawn).
"""
import os
import threading
import time

CROCKFORD_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
ULID_LENGTH = 26

_RANDOM_BITS = 80
_RANDOM_MAX = (1 << _RANDOM_BITS) - 1
_TIMESTAMP_MAX = (1 << 48) - 1


def encode_ulid(timestamp_ms: int, randomness: int) -> str:
    value = (timestamp_ms << _RANDOM_BITS) | randomness
    chars = []
    for _ in range(ULID_LENGTH):
        chars.append(CROCKFORD_ALPHABET[value & 0x1F])
        value >>= 5
    return "".join(reversed(chars))


def decode_ulid_timestamp(ulid: str) -> int:
    """Millisecond timestamp carried by a ULID string."""
    value = 0
    for char in ulid.upper():
        value = (value << 5) | CROCKFORD_ALPHABET.index(char)
    return value >> _RANDOM_BITS


class IDGenerator:
    """Thread-safe monotonic ULID generator."""

    def __init__(self, clock=None):
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._lock = threading.Lock()
        self._last_ms = -1
        self._last_random = 0

    def _next_ulid(self) -> str:
        with self._lock:
            now_ms = self._clock()
            if now_ms <= self._last_ms:
                # same (or earlier) millisecond: keep order by incrementing
                now_ms = self._last_ms
                randomness = self._last_random + 1
                if randomness > _RANDOM_MAX:
                    now_ms += 1
                    randomness = int.from_bytes(os.urandom(10), "big") >> 1
            else:
                # top bit cleared so increments have room before overflow
                randomness = int.from_bytes(os.urandom(10), "big") >> 1

            if now_ms > _TIMESTAMP_MAX:
                raise OverflowError("ULID timestamp overflow")

            self._last_ms = now_ms
            self._last_random = randomness
            return encode_ulid(now_ms, randomness)

    def new(self, prefix: str) -> str:
        """Return `<prefix>_<ulid>`."""
        return f"{prefix}_{self._next_ulid()}"


default_id_generator = IDGenerator()
