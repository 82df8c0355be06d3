import unittest
from pathlib import Path

import attr
import yaml

from rgconv.chart import Chart, Format, Metadata, Note, ScrollVelocity, TimingPoint
from rgconv.errors import ParseError, ParseErrorKind, WriteError, WriteErrorKind
from rgconv.formats import qua
from rgconv.options import WriteOptions


DATA = Path(__file__).parent / 'data'


def _map(*extra_lines, mode='Keys4', objects='- StartTime: 0\n  Lane: 1\n'):
	lines = [f'Mode: {mode}', 'TimingPoints:', '- Bpm: 120', *extra_lines, 'HitObjects:']
	return ('\n'.join(lines) + '\n' + objects).encode('utf-8')


class TestQuaParse(unittest.TestCase):

	def setUp(self):
		self.chart = qua.parse((DATA / 'mania.qua').read_bytes())

	def test_sample(self):
		chart = self.chart
		self.assertEqual(chart.key_count, 4)
		self.assertEqual(chart.timing_points, (TimingPoint(0, 150), TimingPoint(3200, 100, 3)))
		self.assertEqual(chart.scroll_velocities, (ScrollVelocity(1600, 0.5), ScrollVelocity(2400, 0)))
		self.assertEqual(chart.notes, (Note.tap(0, 0), Note.hold(400, 1200, 1), Note.tap(800, 3)))
		self.assertEqual(chart.difficulty_label, 'Normal')
		self.assertEqual(chart.diagnostics, ('hit sounds on 1 note(s) dropped',))

	def test_metadata(self):
		m = self.chart.metadata
		self.assertEqual(m.title, 'Quaver Test')
		self.assertEqual(m.artist, 'Someone')
		self.assertEqual(m.source, 'Somewhere')
		self.assertEqual(m.creator, 'Mapper')
		self.assertEqual(m.genre, 'Electronic')
		self.assertEqual(m.tags, ('tag1', 'tag2'))
		self.assertEqual(m.audio_file, 'audio.mp3')
		self.assertEqual(m.background_file, 'bg.jpg')
		self.assertEqual(m.preview_time_ms, 3000)
		self.assertIs(m.source_format, Format.QUA)
		self.assertEqual(m.extra, {
			'qua.MapId': '77',
			'qua.MapSetId': '7',
			'qua.Description': 'A test map',
			'qua.BPMDoesNotAffectScrollVelocity': 'true',
		})

	def test_scratch_key(self):
		chart = qua.parse(_map('HasScratchKey: true', mode='Keys7'))
		self.assertEqual(chart.key_count, 8)

	def test_initial_scroll_velocity(self):
		chart = qua.parse(_map(
			'InitialScrollVelocity: 0.8', 'SliderVelocities:', '- StartTime: 500\n  Multiplier: 2',
			objects='- StartTime: 250\n  Lane: 1\n',
		))
		self.assertEqual(chart.scroll_velocities, (ScrollVelocity(0, 0.8), ScrollVelocity(500, 2)))

	def test_scalar_text(self):
		chart = qua.parse(_map('Title: 1999', 'DifficultyName: 10'))
		self.assertEqual(chart.metadata.title, '1999')
		self.assertEqual(chart.difficulty_label, '10')

	def test_dropped_lists(self):
		chart = qua.parse(_map('Bookmarks:', '- StartTime: 5', 'EditorLayers: []'))
		self.assertEqual(chart.diagnostics, ('Bookmarks dropped',))

	def assertParseError(self, data, kind, key_path=None):
		with self.assertRaises(ParseError) as cm:
			qua.parse(data)
		self.assertIs(cm.exception.kind, kind)
		if key_path is not None:
			self.assertEqual(cm.exception.position.key_path, key_path)
		return cm.exception

	def test_mode(self):
		e = self.assertParseError(_map(mode='Keys5'), ParseErrorKind.UNSUPPORTED_MODE, ('Mode',))
		self.assertEqual(e.found, 'Keys5')
		self.assertParseError(b'Title: x\n', ParseErrorKind.MISSING_REQUIRED_FIELD, ('Mode',))

	def test_missing_lane(self):
		self.assertParseError(
			_map(objects='- StartTime: 0\n'), ParseErrorKind.MISSING_REQUIRED_FIELD, ('HitObjects', 0, 'Lane'),
		)

	def test_invalid_numbers(self):
		self.assertParseError(
			_map(objects='- StartTime: 0\n  Lane: one\n'), ParseErrorKind.INVALID_NUMBER, ('HitObjects', 0, 'Lane'),
		)
		self.assertParseError(
			b'Mode: Keys4\nTimingPoints:\n- Bpm: fast\n', ParseErrorKind.INVALID_NUMBER, ('TimingPoints', 0, 'Bpm'),
		)

	def test_structure(self):
		self.assertParseError(b'- 1\n- 2\n', ParseErrorKind.MALFORMED_STRUCTURE, ())
		self.assertParseError(b'Mode: Keys4\nTimingPoints: 5\n', ParseErrorKind.MALFORMED_STRUCTURE, ('TimingPoints',))
		self.assertParseError(
			_map('  Signature: Quintuple'), ParseErrorKind.MALFORMED_STRUCTURE, ('TimingPoints', 0, 'Signature'),
		)

	def test_yaml_errors(self):
		with self.assertRaises(ParseError) as cm:
			qua.parse(b'Mode: Keys4\nTitle: [unclosed\n')
		self.assertIs(cm.exception.kind, ParseErrorKind.MALFORMED_STRUCTURE)
		self.assertIsNotNone(cm.exception.position.line)

		self.assertParseError(b'# only a comment\n', ParseErrorKind.TRUNCATED)
		self.assertParseError(b'\xfe\xff', ParseErrorKind.INVALID_ENCODING)


class TestQuaWrite(unittest.TestCase):

	def setUp(self):
		self.options = WriteOptions()
		self.chart = Chart(
			4,
			[TimingPoint(0, 120)],
			[Note.tap(0, 0), Note.tap(500, 1), Note.hold(1000, 2000, 2)],
			Metadata(title='Song', artist='Artist', creator='Me'),
			'Hard',
		)

	def document(self, chart):
		data, report = qua.write(chart, self.options)
		return yaml.safe_load(data.decode('utf-8')), report

	def test_write(self):
		doc, report = self.document(self.chart)
		self.assertEqual(list(doc)[:6], ['AudioFile', 'SongPreviewTime', 'BackgroundFile', 'MapId', 'MapSetId', 'Mode'])
		self.assertEqual(doc['Mode'], 'Keys4')
		self.assertNotIn('HasScratchKey', doc)
		self.assertEqual(doc['SongPreviewTime'], -1)
		self.assertEqual(doc['MapId'], -1)
		self.assertEqual(doc['DifficultyName'], 'Hard')
		self.assertEqual(doc['TimingPoints'], [{'StartTime': 0, 'Bpm': 120.0}])
		self.assertEqual(doc['SliderVelocities'], [])
		self.assertEqual(doc['HitObjects'], [
			{'StartTime': 0, 'Lane': 1, 'KeySounds': []},
			{'StartTime': 500, 'Lane': 2, 'KeySounds': []},
			{'StartTime': 1000, 'Lane': 3, 'EndTime': 2000, 'KeySounds': []},
		])
		self.assertEqual(len(report), 0)

	def test_round_trip(self):
		original = qua.parse((DATA / 'mania.qua').read_bytes())
		data, report = qua.write(original, self.options)
		self.assertEqual(qua.parse(data), original)
		self.assertEqual(len(report), 0)

	def test_deterministic(self):
		self.assertEqual(qua.write(self.chart, self.options)[0], qua.write(self.chart, self.options)[0])

	def test_passthrough_types(self):
		chart = attr.evolve(self.chart, metadata=Metadata(
			title='Song', artist='Artist', creator='Me',
			extra={'qua.MapId': '12', 'qua.BPMDoesNotAffectScrollVelocity': 'false', 'qua.LegacyLNRendering': 'yes'},
		))
		doc, _ = self.document(chart)
		self.assertEqual(doc['MapId'], 12)
		self.assertIs(doc['BPMDoesNotAffectScrollVelocity'], False)
		# kept as text, 'yes' would otherwise turn into a bool
		self.assertEqual(doc['LegacyLNRendering'], 'yes')

	def test_scratch_key(self):
		chart = attr.evolve(self.chart, key_count=8, notes=[Note.tap(0, 7)])
		doc, _ = self.document(chart)
		self.assertEqual(doc['Mode'], 'Keys7')
		self.assertIs(doc['HasScratchKey'], True)
		data, _ = qua.write(chart, self.options)
		self.assertEqual(qua.parse(data).key_count, 8)

	def test_meter(self):
		chart = attr.evolve(self.chart, timing_points=[TimingPoint(0, 120, 3), TimingPoint(1000, 120, 5)])
		doc, report = self.document(chart)
		self.assertEqual(doc['TimingPoints'][0]['Signature'], 'Triple')
		self.assertNotIn('Signature', doc['TimingPoints'][1])
		self.assertEqual(report.subjects(), ['timing_points.meter'])

	def test_lossy(self):
		chart = attr.evolve(self.chart, metadata=Metadata(
			title='Song', artist='Artist', title_alt='ソング', extra={'sm.METER': '3'},
		))
		_, report = self.document(chart)
		self.assertEqual(report.subjects(), ['metadata.creator', 'metadata.title_alt', 'metadata.extra'])

	def test_unicode(self):
		chart = attr.evolve(self.chart, metadata=Metadata(title='ソング', artist='Artist', creator='Me'))
		data, _ = qua.write(chart, self.options)
		self.assertIn('ソング'.encode('utf-8'), data)
		self.assertEqual(qua.parse(data).metadata.title, 'ソング')

	def test_errors(self):
		for key_count in (5, 6, 9):
			with self.assertRaises(WriteError) as cm:
				qua.write(attr.evolve(self.chart, key_count=key_count), self.options)
			self.assertIs(cm.exception.kind, WriteErrorKind.UNREPRESENTABLE_KEY_COUNT)
		with self.assertRaises(WriteError) as cm:
			qua.write(attr.evolve(self.chart, timing_points=[]), self.options)
		self.assertIs(cm.exception.kind, WriteErrorKind.MISSING_REQUIRED_TARGET_FIELD)
