# map_generation/hashing.py

"""
Stable string-to-seed hashing.

Python's built-in hash() is salted per process, so seeds given as text are
turned into integers with a small multiplicative xor hash instead. The same
text always gives the same 64-bit seed, on every run and every machine.
"""

HASH_OFFSET = 99876516661
HASH_PRIME = 779126527
HASH_MASK = 2 ** 64 - 1

# Appended after each string so that consecutive strings cannot run together.
STRING_TERMINATOR = b"\xff"


class SeedHasher:
    """Streaming 64-bit hasher. Feed it bytes with update(), read digest()."""

    def __init__(self):
        self._hash = HASH_OFFSET

    def update(self, data):
        """Feeds raw bytes. Text is encoded as UTF-8 without a terminator."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        value = self._hash
        for byte in data:
            value = ((value ^ byte) * HASH_PRIME) & HASH_MASK
        self._hash = value

    def update_str(self, text: str):
        self.update(text.encode("utf-8"))
        self.update(STRING_TERMINATOR)

    def digest(self) -> int:
        return self._hash


def hash_seed(text: str) -> int:
    """Hashes a seed string into an unsigned 64-bit integer."""
    hasher = SeedHasher()
    hasher.update_str(text)
    return hasher.digest()
