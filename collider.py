"""CNF encoding of SHA-1 using PySAT for preimage experiments.

This module builds a SAT instance that models the SHA-1 compression function
over one or more padded 512-bit blocks. It supports:
  - fixing some or all message bits,
  - optionally constraining the final digest,
  - running a configurable number of rounds,
then asks a SAT solver to find a satisfying assignment.

Every bit vector is a list of solver variables, most significant bit first,
so a 32-bit slice of the message is directly a big-endian SHA-1 word.
"""
import logging
import string
from threading import Timer

from pysat.solvers import Solver

from sha1 import SHA1, BLOCK_SIZE

log = logging.getLogger(__name__)

BLOCK_BITS = BLOCK_SIZE * 8


class SHA1Collider:
    """Builder that encodes SHA-1 as CNF and solves it with a SAT solver.

    Parameters
    - input_bytes: bytes or None. If provided, must be an already padded
                   message (a multiple of 64 bytes); its bits are fixed in
                   the instance. None leaves a single block entirely free.
    - free_input_bits: iterable of message bit indices (MSB-first) left
                   unconstrained, so the solver may pick their values.
    - target_digest: optional 40-character hex digest. If provided, the final
                   state (h0..h4) is constrained to match it.
    - solver_name: PySAT solver to use (default Glucose 4).
    """

    # CNF builder for the boolean function of each 20-step round
    F_GATES = ("_add_ch", "_add_parity", "_add_maj", "_add_parity")

    def __init__(self, input_bytes, free_input_bits=(), target_digest=None, solver_name='g4'):
        if input_bytes is not None and len(input_bytes) % BLOCK_SIZE != 0:
            raise ValueError("input must be padded to a multiple of %d bytes, got %d"
                             % (BLOCK_SIZE, len(input_bytes)))
        num_chunks = len(input_bytes) // BLOCK_SIZE if input_bytes is not None else 1
        free_bits = set(free_input_bits)
        if input_bytes is not None:
            out_of_range = sorted(bit for bit in free_bits if not 0 <= bit < len(input_bytes) * 8)
            if out_of_range:
                raise ValueError("free input bits %r outside a %d-bit message"
                                 % (out_of_range, len(input_bytes) * 8))
        self.target_digest = self._parse_digest(target_digest)
        self.solver = Solver(name=solver_name)
        self.var_idx = 1
        self._encoded = False
        self._init_vars(num_chunks)
        if input_bytes is not None:
            for i, value in enumerate(bytes(input_bytes)):
                byte = self._get_byte_vars(self.x, i)
                skip = [bit % 8 for bit in free_bits if bit // 8 == i]
                self._add_constant(byte, value, free_bits=skip)
        # Constrain the initial state to the SHA-1 initial vector (IV).
        for h, iv in zip(self.state, SHA1.IV):
            self._add_constant(h, iv)

    @staticmethod
    def _parse_digest(digest):
        if digest is None:
            return None
        if len(digest) != 40 or not all(ch in string.hexdigits for ch in digest):
            raise ValueError("target digest must be 40 hex characters, got %r" % (digest,))
        return int(digest, 16)

    @property
    def state(self):
        return [self.h0, self.h1, self.h2, self.h3, self.h4]

    def _init_number(self, num_bits):
        """Allocate and return a fresh vector of SAT variables of length num_bits."""
        start = self.var_idx
        self.var_idx += num_bits
        return list(range(start, self.var_idx))

    def _init_bit(self):
        """Allocate and return a fresh SAT variable (single bit)."""
        return self._init_number(1)[0]

    def _init_vars(self, num_chunks):
        """Initialize message and state variables for the given chunk count."""
        self.x = self._init_number(BLOCK_BITS * num_chunks)
        self.h0, self.h1, self.h2, self.h3, self.h4 = [self._init_number(32) for _ in range(5)]

    @staticmethod
    def _get_byte_vars(bit_array, byte_idx):
        return bit_array[byte_idx*8:(byte_idx+1)*8]

    @staticmethod
    def _get_word_vars(bit_array, word_idx):
        return bit_array[word_idx*32:(word_idx+1)*32]

    def _output(self, a, c):
        if c is None:
            return self._init_number(len(a))
        assert len(a) == len(c)
        return c

    def _add_equality(self, a, b):
        """Constrain vectors a and b to be bitwise equal (a[i] <-> b[i])."""
        assert len(a) == len(b)
        for x, y in zip(a, b):
            self.solver.add_clause([-x, y])
            self.solver.add_clause([x, -y])

    def _add_constant(self, bit_array, constant, free_bits=()):
        """Fix bit_array (MSB-first) to constant, leaving indexes in free_bits open."""
        assert 0 <= constant < 2 ** len(bit_array)
        width = len(bit_array)
        for i, var in enumerate(bit_array):
            if i in free_bits:
                continue
            if (constant >> (width - i - 1)) & 1:
                self.solver.add_clause([var])
            else:
                self.solver.add_clause([-var])
        return bit_array

    def _add_or(self, a, b, c=None):
        """Bitwise OR: c = a | b. Returns c (allocates if None)."""
        assert len(a) == len(b)
        c = self._output(a, c)
        for x, y, z in zip(a, b, c):
            self.solver.add_clause([x, y, -z])
            self.solver.add_clause([-x, z])
            self.solver.add_clause([-y, z])
        return c

    def _add_and(self, a, b, c=None):
        """Bitwise AND: c = a & b. Returns c (allocates if None)."""
        assert len(a) == len(b)
        c = self._output(a, c)
        for x, y, z in zip(a, b, c):
            self.solver.add_clause([-x, -y, z])
            self.solver.add_clause([x, -z])
            self.solver.add_clause([y, -z])
        return c

    def _add_xor(self, a, b, c=None):
        """Bitwise XOR: c = a ^ b. Returns c (allocates if None)."""
        assert len(a) == len(b)
        c = self._output(a, c)
        for x, y, z in zip(a, b, c):
            self.solver.add_clause([-x, -y, -z])
            self.solver.add_clause([x, y, -z])
            self.solver.add_clause([x, -y, z])
            self.solver.add_clause([-x, y, z])
        return c

    def _add_not(self, a, b=None):
        """Bitwise NOT: b = ~a. Returns b (allocates if None)."""
        b = self._output(a, b)
        for x, y in zip(a, b):
            self.solver.add_clause([-x, -y])
            self.solver.add_clause([x, y])
        return b

    def _add_sum(self, a, b, c=None):
        """Add two n-bit vectors a and b modulo 2^n (ripple-carry adder)."""
        assert len(a) == len(b)
        c = self._output(a, c)
        carry = None  # carry into the current bit
        for idx in range(len(a) - 1, -1, -1):
            last = idx == 0
            if carry is None:
                # Half-adder for the LSB
                self._add_xor([a[idx]], [b[idx]], [c[idx]])
                if not last:
                    carry = self._add_and([a[idx]], [b[idx]])[0]
                continue
            ab_xor = self._add_xor([a[idx]], [b[idx]])
            self._add_xor([carry], ab_xor, [c[idx]])
            if not last:
                cout1 = self._add_and([a[idx]], [b[idx]])
                cout2 = self._add_and([carry], ab_xor)
                carry = self._add_or(cout1, cout2)[0]
        return c

    def _add_sums(self, *operands):
        """Add any number of equal-width vectors modulo 2^n."""
        total = operands[0]
        for operand in operands[1:]:
            total = self._add_sum(total, operand)
        return total

    def _add_rotate_left(self, a, n, b=None):
        """Rotate-left by n bits. Returns b (allocates if None)."""
        b = self._output(a, b)
        self._add_equality(a[n:] + a[:n], b)
        return b

    def _add_ch(self, b, c, d):
        return self._add_or(self._add_and(b, c), self._add_and(self._add_not(b), d))

    def _add_parity(self, b, c, d):
        return self._add_xor(self._add_xor(b, c), d)

    def _add_maj(self, b, c, d):
        return self._add_or(self._add_or(self._add_and(b, c), self._add_and(b, d)), self._add_and(c, d))

    def add_F(self, b, c, d, i):
        """CNF version of SHA-1's round-dependent boolean function."""
        if not 0 <= i < 80:
            raise ValueError("Invalid loop index")
        return getattr(self, self.F_GATES[i // 20])(b, c, d)

    def add_schedule(self, chunk_idx, num_words=80):
        """Encode the message schedule of one block; returns num_words word vectors."""
        w = [self._get_word_vars(self.x, chunk_idx*16 + j) for j in range(16)]
        for i in range(16, num_words):
            mixed = self._add_xor(self._add_xor(w[i-3], w[i-8]), self._add_xor(w[i-14], w[i-16]))
            w.append(self._add_rotate_left(mixed, 1))
        return w

    def add_sha1_iteration(self, a, b, c, d, e, w, i):
        """One SHA-1 step updating (a,b,c,d,e) with 32-bit word w at step i."""
        f = self.add_F(b, c, d, i)
        k = self._add_constant(self._init_number(32), SHA1.K(i))
        temp = self._add_sums(self._add_rotate_left(a, 5), f, e, k, w)
        return temp, a, self._add_rotate_left(b, 30), c, d

    def solve_sha1_chunk(self, chunk_idx, num_rounds=4):
        """Encode all steps for one 64-byte chunk and update state variables."""
        SHA1.check_rounds(num_rounds)
        w = self.add_schedule(chunk_idx, num_rounds * 20)

        a, b, c, d, e = self.state
        for i in range(num_rounds * 20):
            a, b, c, d, e = self.add_sha1_iteration(a, b, c, d, e, w[i], i)

        # State update: add the working registers into the chaining value.
        self.h0 = self._add_sum(self.h0, a)
        self.h1 = self._add_sum(self.h1, b)
        self.h2 = self._add_sum(self.h2, c)
        self.h3 = self._add_sum(self.h3, d)
        self.h4 = self._add_sum(self.h4, e)

    def solve_sha1(self, num_rounds=4, timeout=None):
        """Finalize the encoding for all chunks, add optional digest constraint, and solve.

        Returns (False, None) if UNSAT or interrupted by the timeout (seconds);
        otherwise (True, (x_bytes, hex_digest)).
        """
        SHA1.check_rounds(num_rounds)
        if self._encoded:
            raise RuntimeError("solve_sha1 may only be called once per instance")
        self._encoded = True
        for i in range(len(self.x) // BLOCK_BITS):
            self.solve_sha1_chunk(i, num_rounds)

        if self.target_digest is not None:
            for j, h in enumerate(self.state):
                self._add_constant(h, (self.target_digest >> (32 * (4 - j))) & 0xffffffff)
        log.debug("encoded %d block(s), %d round(s): %d variables",
                  len(self.x) // BLOCK_BITS, num_rounds, self.var_idx - 1)

        if timeout is None:
            sat = self.solver.solve()
        else:
            timer = Timer(timeout, self.solver.interrupt)
            timer.start()
            try:
                sat = self.solver.solve_limited(expect_interrupt=True)
            finally:
                timer.cancel()
                self.solver.clear_interrupt()
        log.debug("solver returned %r", sat)
        if not sat:
            return False, None
        return True, self.process_solution(self.solver.get_model())

    @staticmethod
    def solution_to_int(model, vars):
        """Read a bit-vector assignment (MSB-first) from model as an integer."""
        value = 0
        for bit_var in vars:
            bit_val = bit_var <= len(model) and model[bit_var-1] > 0
            value = (value << 1) | bit_val
        return value

    def solution_to_bytes(self, model, vars):
        """Read a bit-vector assignment from model and pack into bytes."""
        return self.solution_to_int(model, vars).to_bytes(len(vars) // 8, 'big')

    def process_solution(self, model):
        """Extract (message_bytes, hex_digest) from a satisfying assignment."""
        x = self.solution_to_bytes(model, self.x)
        return x, SHA1.finalize([self.solution_to_int(model, h) for h in self.state])

    def delete(self):
        """Release the underlying solver."""
        self.solver.delete()
