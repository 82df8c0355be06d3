import math
import unittest

from rgconv import keypath as kp


class TestKeyPath(unittest.TestCase):

	def setUp(self):
		self.doc = {
			'Mode': 'Keys4',
			'HasScratchKey': True,
			'Title': 1999,
			'HitObjects': [
				{'StartTime': 100, 'Lane': 1},
				{'StartTime': 250.5, 'Lane': 'two'},
			],
			'Nothing': None,
		}

	def test_get(self):
		self.assertEqual(kp.get(self.doc, ('HitObjects', 0, 'Lane'), kp.check_int), 1)
		self.assertEqual(kp.get(self.doc, ('HitObjects', 1, 'StartTime'), kp.check_number), 250.5)
		self.assertEqual(kp.get(self.doc, ('Title',), kp.check_scalar_str), '1999')
		self.assertIs(kp.get(self.doc, (), kp.check_mapping), self.doc)

	def test_missing(self):
		with self.assertRaises(kp.KeyPathError) as cm:
			kp.get(self.doc, ('HitObjects', 2, 'Lane'), kp.check_int)
		self.assertTrue(cm.exception.missing)
		self.assertEqual(cm.exception.path, ('HitObjects', 2))

	def test_not_indexable(self):
		with self.assertRaises(kp.KeyPathError) as cm:
			kp.get(self.doc, ('Mode', 'Keys'), kp.check_scalar_str)
		self.assertFalse(cm.exception.missing)
		self.assertEqual(cm.exception.path, ('Mode',))

	def test_wrong_type(self):
		with self.assertRaises(kp.KeyPathError) as cm:
			kp.get(self.doc, ('HitObjects', 1, 'Lane'), kp.check_int)
		self.assertFalse(cm.exception.missing)
		self.assertEqual(cm.exception.expected, 'an integer')
		self.assertEqual(cm.exception.found, 'two')
		self.assertIn('HitObjects[1].Lane', str(cm.exception))

	def test_get_optional(self):
		self.assertEqual(kp.get_optional(self.doc, ('HitObjects', 0, 'EndTime'), kp.check_int, 0), 0)
		self.assertEqual(kp.get_optional(self.doc, ('Nothing',), kp.check_int, 5), 5)
		self.assertEqual(kp.get_optional(self.doc, ('HitObjects', 0, 'Lane'), kp.check_int, 0), 1)
		# only the last key may be missing
		self.assertRaises(kp.KeyPathError, lambda: kp.get_optional(self.doc, ('Missing', 'Lane'), kp.check_int, 0))

	def test_get_sequence(self):
		self.assertEqual(len(kp.get_sequence(self.doc, ('HitObjects',))), 2)
		self.assertEqual(kp.get_sequence(self.doc, ('TimingPoints',)), [])
		self.assertRaises(kp.KeyPathError, lambda: kp.get_sequence(self.doc, ('Mode',)))

	def test_checks(self):
		self.assertRaises(kp.CheckError, lambda: kp.check_int(True))
		self.assertRaises(kp.CheckError, lambda: kp.check_number(False))
		self.assertRaises(kp.CheckError, lambda: kp.check_number('3'))
		self.assertTrue(math.isnan(kp.check_number(math.nan)))
		self.assertRaises(kp.CheckError, lambda: kp.check_finite(math.inf))
		self.assertRaises(kp.CheckError, lambda: kp.check_bool(1))
		self.assertEqual(kp.check_scalar_str(False), 'false')
		self.assertRaises(kp.CheckError, lambda: kp.check_scalar_str([]))
		self.assertRaises(kp.CheckError, lambda: kp.check_sequence('abc'))
		self.assertRaises(kp.CheckError, lambda: kp.check_mapping([]))
