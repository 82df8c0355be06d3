import unittest
from fractions import Fraction

from rgconv.timing import TimingMap


class TestTimingMap(unittest.TestCase):

	def setUp(self):
		self.constant = TimingMap.from_beats(0, [(0, 120)])
		self.changing = TimingMap.from_beats(0, [(4, 240), (0, 120)])
		self.stopping = TimingMap.from_beats(0, [(0, 60)], [(1, 500), (3, 250)])

	def test_constant(self):
		self.assertEqual(self.constant.time_at(4), 2000)
		self.assertAlmostEqual(self.constant.time_at(Fraction(1, 48)), 500 / 48)
		self.assertEqual(self.constant.beat_at(2000), 4)
		self.assertEqual(self.constant.time_at(-1), -500)

	def test_origin(self):
		tm = TimingMap.from_beats(-500, [(0, 120)])
		self.assertEqual(tm.origin_ms, -500)
		self.assertEqual(tm.time_at(1), 0)
		self.assertEqual(tm.beat_at(0), 1)

	def test_changes(self):
		self.assertEqual(self.changing.time_at(4), 2000)
		self.assertEqual(self.changing.time_at(8), 3000)
		self.assertEqual(self.changing.beat_at(3000), 8)
		self.assertEqual(self.changing.bpm_at(3), 120)
		self.assertEqual(self.changing.bpm_at(4), 240)

	def test_with_change(self):
		self.assertEqual(self.constant.with_change(4, 240), self.changing)
		self.assertRaises(ValueError, lambda: self.changing.with_change(2, 60))

	def test_stops(self):
		# a stop delays the beats after it, not its own
		self.assertEqual(self.stopping.time_at(1), 1000)
		self.assertEqual(self.stopping.time_at(2), 2500)
		self.assertEqual(self.stopping.time_at(3), 3500)
		self.assertEqual(self.stopping.time_at(4), 4750)

	def test_same_beat(self):
		# the later of two changes at one beat wins
		tm = TimingMap.from_beats(0, [(0, 120), (0, 60)])
		self.assertEqual(tm.time_at(1), 1000)

	def test_invalid(self):
		self.assertRaises(ValueError, lambda: TimingMap.from_beats(0, []))
		self.assertRaises(ValueError, lambda: TimingMap.from_beats(0, [(0, 120), (4, 0)]))
