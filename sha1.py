"""SHA-1 message digest (pure Python, FIPS 180-4).

This module implements SHA-1 from scratch: padding, the 80-word message
schedule, the 80-step compression function and digest assembly. Like the
compression models elsewhere in this repository it can run a reduced number
of rounds (1–4 rounds = 20 steps each; full SHA-1 uses 4). A SHA1 instance
holds the running state words h0..h4 for one computation; the module-level
sha1() builds a fresh instance per call.

"""
import logging
import struct

log = logging.getLogger(__name__)

MASK = 0xffffffff
BLOCK_SIZE = 64  # bytes
MAX_BIT_LENGTH = 2 ** 64


class InputTooLarge(ValueError):
    """Raised when a message's bit length does not fit the 64-bit length field."""


def _ch(b, c, d):
    return (b & c) | (~b & d)


def _parity(b, c, d):
    return b ^ c ^ d


def _maj(b, c, d):
    return (b & c) | (b & d) | (c & d)


class SHA1:

    IV = (0x67452301, 0xefcdab89, 0x98badcfe, 0x10325476, 0xc3d2e1f0)

    # (boolean function, additive constant) per 20-step round
    ROUNDS = ((_ch, 0x5a827999),
              (_parity, 0x6ed9eba1),
              (_maj, 0x8f1bbcdc),
              (_parity, 0xca62c1d6))

    def __init__(self):
        """Initialize to the SHA-1 initial vector (IV)."""
        self.h0, self.h1, self.h2, self.h3, self.h4 = SHA1.IV

    @property
    def state(self):
        return (self.h0, self.h1, self.h2, self.h3, self.h4)

    @staticmethod
    def _round(i):
        if not 0 <= i < 80:
            raise ValueError("Invalid loop index")
        return SHA1.ROUNDS[i // 20]

    @staticmethod
    def F(b, c, d, i):
        """SHA-1 boolean function selected by step index i.

        Round 0 (i < 20): (b & c) | (~b & d)
        Round 1 (i < 40): b ^ c ^ d
        Round 2 (i < 60): (b & c) | (b & d) | (c & d)
        Round 3 (i < 80): b ^ c ^ d
        """
        f, _ = SHA1._round(i)
        return f(b, c, d) & MASK

    @staticmethod
    def K(i):
        """Return the additive constant for step index i."""
        return SHA1._round(i)[1]

    @staticmethod
    def ROTL(x, n):
        """Rotate the 32-bit word x left by n bits."""
        x = x & MASK
        return ((x << n) | (x >> (32 - n))) & MASK

    @staticmethod
    def check_rounds(num_rounds):
        if num_rounds not in (1, 2, 3, 4):
            raise ValueError("num_rounds must be 1, 2, 3 or 4, got %r" % (num_rounds,))

    @staticmethod
    def pad(message):
        """Return message padded to a multiple of 64 bytes per SHA-1.

        Padding: 0x80 byte, then 0x00 bytes up to 56 mod 64, then the
        64-bit big-endian length (in bits).
        """
        message = _as_bytes(message)
        num_bits = len(message) * 8
        if num_bits >= MAX_BIT_LENGTH:
            raise InputTooLarge("message of %d bytes exceeds the 64-bit length field" % len(message))
        zeros = (55 - len(message)) % BLOCK_SIZE
        return message + b"\x80" + b"\x00" * zeros + struct.pack(">Q", num_bits)

    @staticmethod
    def expand(block):
        """Expand one 64-byte block into the 80-word message schedule.

        Words 0-15 are the block's big-endian words; word i >= 16 is
        ROTL(w[i-3] ^ w[i-8] ^ w[i-14] ^ w[i-16], 1).
        """
        if len(block) != BLOCK_SIZE:
            raise ValueError("block must be %d bytes, got %d" % (BLOCK_SIZE, len(block)))
        w = list(struct.unpack(">16I", block))
        for i in range(16, 80):
            w.append(SHA1.ROTL(w[i - 3] ^ w[i - 8] ^ w[i - 14] ^ w[i - 16], 1))
        return w

    @staticmethod
    def sha1_iteration(a, b, c, d, e, w, i):
        """Perform one SHA-1 step (i) on registers (a,b,c,d,e) with word w."""
        temp = (SHA1.ROTL(a, 5) + SHA1.F(b, c, d, i) + e + SHA1.K(i) + w) & MASK
        return temp, a, SHA1.ROTL(b, 30), c, d

    @staticmethod
    def compress(schedule, state, num_rounds=4):
        """Run num_rounds rounds over schedule starting from state.

        Returns the working registers (a,b,c,d,e); the caller adds them
        into the running state.
        """
        SHA1.check_rounds(num_rounds)
        a, b, c, d, e = state
        for i in range(num_rounds * 20):
            a, b, c, d, e = SHA1.sha1_iteration(a, b, c, d, e, schedule[i], i)
        return a, b, c, d, e

    @staticmethod
    def finalize(state):
        """Render the five state words as a 40-character lowercase hex string."""
        return "".join("%08x" % (h & MASK) for h in state)

    def sha1_chunk(self, block, num_rounds=4):
        """Process one 64-byte block and update internal state."""
        a, b, c, d, e = SHA1.compress(SHA1.expand(block), self.state, num_rounds)

        self.h0 = (self.h0 + a) & MASK
        self.h1 = (self.h1 + b) & MASK
        self.h2 = (self.h2 + c) & MASK
        self.h3 = (self.h3 + d) & MASK
        self.h4 = (self.h4 + e) & MASK

    def sha1_digest(self, message, num_rounds=4):
        """Compute the SHA-1 digest of message as a hex string.

        The message is always padded, so its length may be anything. Each call
        starts from the IV, so an instance may be reused.
        """
        SHA1.check_rounds(num_rounds)
        padded = SHA1.pad(message)
        self.h0, self.h1, self.h2, self.h3, self.h4 = SHA1.IV
        log.debug("hashing %d block(s), %d round(s)", len(padded) // BLOCK_SIZE, num_rounds)
        for i in range(0, len(padded), BLOCK_SIZE):
            self.sha1_chunk(padded[i:i + BLOCK_SIZE], num_rounds)
        return SHA1.finalize(self.state)


def _as_bytes(message):
    if isinstance(message, str):
        raise TypeError("sha1 operates on bytes; encode text first (e.g. message.encode('utf-8'))")
    return memoryview(message).tobytes()


def sha1(message):
    """Return the SHA-1 hex digest of the byte sequence message."""
    return SHA1().sha1_digest(message)
