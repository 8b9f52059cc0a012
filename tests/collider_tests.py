import unittest
from collider import SHA1Collider
from sha1 import SHA1


class TestSHA1ColliderAddConstraints(unittest.TestCase):
    def setUp(self):
        self.collider = SHA1Collider(SHA1.pad(b"Hello, World!"))
        self.addCleanup(self.collider.delete)

    def bits(self, n):
        return [self.collider._init_bit() for _ in range(n)]

    def solve(self, assumptions=()):
        solver = self.collider.solver
        if not solver.solve(assumptions=list(assumptions)):
            return None
        return solver.get_model()

    def values(self, model, vars):
        return [model[v - 1] > 0 for v in vars]

    def test_add_constant_sets_bits_correctly_msb_first(self):
        bits = self.bits(4)
        self.collider._add_constant(bits, 0b1010)
        model = self.solve()
        self.assertIsNotNone(model)
        self.assertEqual(self.values(model, bits), [True, False, True, False])

    def test_add_constant_leaves_free_bits_open(self):
        bits = self.bits(4)
        self.collider._add_constant(bits, 0b1010, free_bits=[1])
        self.assertIsNotNone(self.solve([bits[1]]))
        self.assertIsNotNone(self.solve([-bits[1]]))
        self.assertIsNone(self.solve([-bits[0]]))

    def check_truth_table(self, gate, op):
        a, b, c = self.bits(3)
        gate([a], [b], [c])
        for a_val in (False, True):
            for b_val in (False, True):
                for c_val in (False, True):
                    assumps = [a if a_val else -a, b if b_val else -b, c if c_val else -c]
                    sat = self.solve(assumps) is not None
                    self.assertEqual(sat, op(a_val, b_val) == c_val)

    def test_add_or_truth_table_explicit_output(self):
        self.check_truth_table(self.collider._add_or, lambda x, y: x or y)

    def test_add_and_truth_table_explicit_output(self):
        self.check_truth_table(self.collider._add_and, lambda x, y: x and y)

    def test_add_xor_truth_table_explicit_output(self):
        self.check_truth_table(self.collider._add_xor, lambda x, y: x != y)

    def test_add_not_truth_table_explicit_output(self):
        a, b = self.bits(2)
        self.collider._add_not([a], [b])
        for a_val in (False, True):
            for b_val in (False, True):
                assumps = [a if a_val else -a, b if b_val else -b]
                sat = self.solve(assumps) is not None
                self.assertEqual(sat, b_val == (not a_val))

    def test_add_sum_explicit_output(self):
        a = self.bits(4)
        b = self.bits(4)
        self.collider._add_constant(a, 0b1110)
        self.collider._add_constant(b, 0b1101)
        c = self.collider._add_sum(a, b)
        model = self.solve()
        self.assertIsNotNone(model)
        # 14 + 13 = 27 = 0b1011 mod 16
        self.assertEqual(self.values(model, c), [True, False, True, True])

    def test_add_sums_wraps_mod_2_32(self):
        operands = [self.collider._add_constant(self.bits(32), v)
                    for v in (0xffffffff, 0x00000002, 0x80000000, 0x80000000, 0x12345678)]
        total = self.collider._add_sums(*operands)
        model = self.solve()
        self.assertEqual(self.collider.solution_to_int(model, total), 0x12345679)

    def test_add_rotate_left_explicit_output(self):
        a = self.bits(4)
        b = self.collider._add_rotate_left(a, 2)
        self.collider._add_constant(a, 0b1101)
        model = self.solve()
        self.assertIsNotNone(model)
        self.assertEqual(self.values(model, b), [False, True, True, True])

    def test_add_F_matches_round_functions(self):
        b, c, d = 0xf0f0f0f0, 0xcccccccc, 0xaaaaaaaa
        words = [self.collider._add_constant(self.bits(32), v) for v in (b, c, d)]
        outputs = {i: self.collider.add_F(*words, i) for i in (0, 20, 40, 60)}
        model = self.solve()
        for i, out in outputs.items():
            self.assertEqual(self.collider.solution_to_int(model, out), SHA1.F(b, c, d, i))

    def test_add_F_invalid_index(self):
        with self.assertRaises(ValueError):
            self.collider.add_F([1], [2], [3], 80)


class TestSHA1ColliderSolve(unittest.TestCase):

    def make(self, *args, **kwargs):
        collider = SHA1Collider(*args, **kwargs)
        self.addCleanup(collider.delete)
        return collider

    def test_solve_sha1_chunk(self):
        message = b"Hello, World!"
        padded = SHA1.pad(message)
        collider = self.make(padded)
        sat, (x, digest) = collider.solve_sha1()
        self.assertTrue(sat)
        self.assertEqual(x, padded)
        self.assertEqual(digest, SHA1().sha1_digest(message))

    def test_solve_reduced_rounds(self):
        message = b"abc"
        collider = self.make(SHA1.pad(message))
        sat, (_, digest) = collider.solve_sha1(num_rounds=2)
        self.assertTrue(sat)
        self.assertEqual(digest, SHA1().sha1_digest(message, num_rounds=2))

    def test_solve_two_blocks(self):
        message = bytes(range(70))
        padded = SHA1.pad(message)
        self.assertEqual(len(padded), 128)
        sat, (x, digest) = self.make(padded).solve_sha1(num_rounds=1)
        self.assertTrue(sat)
        self.assertEqual(x, padded)
        self.assertEqual(digest, SHA1().sha1_digest(message, num_rounds=1))

    def test_wrong_target_is_unsat(self):
        collider = self.make(SHA1.pad(b"abc"), target_digest="00" * 20)
        self.assertEqual(collider.solve_sha1(num_rounds=1), (False, None))

    def test_reduced_round_preimage(self):
        message = b"preimage search!"
        target = SHA1().sha1_digest(message, num_rounds=1)
        # leave the 12 low bits of the first word open
        free = list(range(20, 32))
        collider = self.make(SHA1.pad(message), free_input_bits=free, target_digest=target)
        sat, (x, digest) = collider.solve_sha1(num_rounds=1)
        self.assertTrue(sat)
        self.assertEqual(digest, target)
        self.assertEqual(x[4:], SHA1.pad(message)[4:])
        self.assertEqual(SHA1().sha1_digest(x[:len(message)], num_rounds=1), target)

    def test_full_preimage_times_out(self):
        collider = self.make(None, target_digest=SHA1().sha1_digest(b"abc"))
        self.assertEqual(collider.solve_sha1(timeout=1), (False, None))

    def test_solve_only_once(self):
        collider = self.make(SHA1.pad(b""))
        collider.solve_sha1(num_rounds=1)
        with self.assertRaises(RuntimeError):
            collider.solve_sha1(num_rounds=1)

    def test_rejects_unpadded_input(self):
        with self.assertRaises(ValueError):
            SHA1Collider(b"abc")

    def test_rejects_bad_digest(self):
        with self.assertRaises(ValueError):
            SHA1Collider(SHA1.pad(b"abc"), target_digest="abc")
        with self.assertRaises(ValueError):
            SHA1Collider(SHA1.pad(b"abc"), target_digest="z" * 40)
        for digest in ("0x" + "f" * 38, "-" + "f" * 39, "f" * 19 + "_" + "f" * 20, " " + "f" * 39):
            with self.subTest(digest=digest):
                with self.assertRaises(ValueError):
                    SHA1Collider(SHA1.pad(b"abc"), target_digest=digest)

    def test_accepts_uppercase_digest(self):
        target = SHA1().sha1_digest(b"abc", num_rounds=1)
        collider = self.make(SHA1.pad(b"abc"), target_digest=target.upper())
        self.assertEqual(collider.target_digest, int(target, 16))

    def test_rejects_free_bits_outside_message(self):
        padded = SHA1.pad(b"abc")
        for bit in (512, 1000, -1):
            with self.subTest(bit=bit):
                with self.assertRaises(ValueError):
                    SHA1Collider(padded, free_input_bits=[0, bit])
        collider = self.make(padded, free_input_bits=[0, 511])
        self.assertIsNotNone(collider.solver)

    def test_bad_num_rounds_leaves_instance_usable(self):
        message = b"abc"
        collider = self.make(SHA1.pad(message))
        for n in (0, 5):
            with self.assertRaises(ValueError):
                collider.solve_sha1(num_rounds=n)
        sat, (_, digest) = collider.solve_sha1(num_rounds=1)
        self.assertTrue(sat)
        self.assertEqual(digest, SHA1().sha1_digest(message, num_rounds=1))


if __name__ == "__main__":
    unittest.main(verbosity=1)
