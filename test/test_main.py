import shutil
import tempfile
import unittest
from pathlib import Path

from rgconv import parse_from_osu, parse_from_qua, parse_from_sm
from rgconv.main import main


DATA = Path(__file__).parent / 'data'


class TestMain(unittest.TestCase):

	def setUp(self):
		self.tmp = tempfile.TemporaryDirectory()
		self.dir = Path(self.tmp.name)
		for name in ('minimal.sm', 'multi.sm', 'hold.osu', 'mania.qua'):
			shutil.copy(DATA / name, self.dir / name)

	def tearDown(self):
		self.tmp.cleanup()

	def run_main(self, *args):
		return main(['-qq', *(str(a) for a in args)])

	def test_output_suffix(self):
		output = self.dir / 'out.qua'
		self.assertEqual(self.run_main(self.dir / 'hold.osu', output), 0)
		self.assertEqual(len(parse_from_qua(output.read_bytes()).notes), 3)
		self.assertFalse((self.dir / 'out.qua.partial').exists())

	def test_default_output(self):
		self.assertEqual(self.run_main(self.dir / 'mania.qua', '--to', 'osu'), 0)
		self.assertEqual(parse_from_osu((self.dir / 'mania.osu').read_bytes()).key_count, 4)

	def test_explicit_formats(self):
		source = self.dir / 'chart.txt'
		shutil.copy(DATA / 'minimal.sm', source)
		output = self.dir / 'chart.out'
		self.assertEqual(self.run_main(source, output, '-f', 'sm', '-t', 'osu'), 0)
		self.assertEqual(parse_from_osu(output.read_bytes()).notes[0].lane, 0)

	def test_difficulty(self):
		output = self.dir / 'edit.osu'
		self.assertEqual(self.run_main(self.dir / 'multi.sm', output, '-d', 'Expert Edit'), 0)
		self.assertEqual(parse_from_osu(output.read_bytes()).difficulty_label, 'Expert Edit')

	def test_all(self):
		output = self.dir / 'charts'
		self.assertEqual(self.run_main(self.dir / 'multi.sm', output, '--all', '--to', 'qua'), 0)
		self.assertEqual(sorted(p.name for p in output.iterdir()), [
			'multi [Easy].qua', 'multi [Expert Edit].qua',
		])

	def test_all_beside_input(self):
		self.assertEqual(self.run_main(self.dir / 'multi.sm', '-a', '-t', 'osu'), 0)
		self.assertTrue((self.dir / 'multi [Easy].osu').is_file())
		self.assertTrue((self.dir / 'multi [Expert Edit].osu').is_file())

	def test_options(self):
		options = self.dir / 'options.yaml'
		options.write_text('sm_decimal_places: 2\n')
		output = self.dir / 'out.sm'
		self.assertEqual(self.run_main(self.dir / 'hold.osu', output, '--options', options), 0)
		self.assertIn(b'#OFFSET:0.00;', output.read_bytes())
		self.assertEqual(len(parse_from_sm(output.read_bytes()).notes), 3)

	def test_logging(self):
		with self.assertLogs(level='WARNING') as cm:
			self.assertEqual(main([str(self.dir / 'minimal.sm'), str(self.dir / 'out.osu')]), 0)
		self.assertTrue(any('metadata.creator' in line for line in cm.output))

	def test_conversion_error(self):
		bad = self.dir / 'bad.qua'
		bad.write_text('Mode: Keys5\n')
		with self.assertLogs(level='ERROR') as cm:
			self.assertEqual(main([str(bad), str(self.dir / 'bad.osu')]), 1)
		self.assertIn("parse failed: Mode: unsupported mode 'Keys5'", cm.output[0])
		self.assertFalse((self.dir / 'bad.osu').exists())

	def test_usage_errors(self):
		# no target format
		self.assertEqual(self.run_main(self.dir / 'minimal.sm'), 2)
		# missing input
		self.assertEqual(self.run_main(self.dir / 'missing.sm', self.dir / 'out.osu'), 2)
		# would overwrite the input
		self.assertEqual(self.run_main(self.dir / 'minimal.sm', self.dir / 'minimal.sm', '-t', 'sm'), 2)
		# unknown suffix
		self.assertEqual(self.run_main(self.dir / 'minimal.sm', self.dir / 'out.bms'), 2)
		# bad options
		options = self.dir / 'options.yaml'
		options.write_text('sm_decimals: 2\n')
		self.assertEqual(self.run_main(self.dir / 'hold.osu', self.dir / 'out.sm', '--options', options), 2)

	def test_unknown_format_choice(self):
		with self.assertRaises(SystemExit):
			self.run_main(self.dir / 'minimal.sm', '-t', 'bms')

	def write_song(self, *charts):
		song = self.dir / 'song.sm'
		parts = ['#TITLE:Song;', '#ARTIST:Nobody;', '#OFFSET:0.000;', '#BPMS:0.000=120.000;']
		for steps_type, label, row in charts:
			parts += ['#NOTES:', f'{steps_type}:', f'{label}:', 'Hard:', '5:', '0,0,0,0,0:', row, ';']
		song.write_text('\n'.join(parts) + '\n')
		return song

	def test_all_same_label(self):
		song = self.write_song(('dance-single', '', '1000'), ('dance-double', '', '10000000'))
		output = self.dir / 'charts'
		self.assertEqual(self.run_main(song, output, '--all', '--to', 'osu'), 0)
		self.assertEqual(sorted(p.name for p in output.iterdir()), [
			'song [Hard dance-double].osu', 'song [Hard dance-single].osu',
		])
		self.assertEqual(parse_from_osu((output / 'song [Hard dance-single].osu').read_bytes()).key_count, 4)
		self.assertEqual(parse_from_osu((output / 'song [Hard dance-double].osu').read_bytes()).key_count, 8)

	def test_all_same_file_name(self):
		# distinct labels that become the same file name
		song = self.write_song(('dance-single', 'a/b', '1000'), ('dance-single', 'a_b', '0100'))
		output = self.dir / 'charts'
		self.assertEqual(self.run_main(song, output, '--all', '--to', 'osu'), 2)
		self.assertFalse(output.exists())
