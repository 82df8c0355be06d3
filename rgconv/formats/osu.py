'''osu! ``.osu`` beatmaps, mania mode only

Sections are ``[Name]`` headers followed by either ``Key: value`` lines or
comma-separated records. Columns are encoded in the hit object x coordinate.
'''

import logging
import re
from bisect import bisect_right
from math import floor
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import attr

from ..chart import Chart, Format, Metadata, Note, ScrollVelocity, TimingPoint
from ..errors import ParseError, ParseErrorKind, SourcePosition, Stage
from ..options import WriteOptions
from ..report import Report
from . import common


_logger = logging.getLogger(__name__)


SECTIONS = ('General', 'Editor', 'Metadata', 'Difficulty', 'Events', 'TimingPoints', 'Colours', 'HitObjects')

MANIA_MODE = 3
PLAYFIELD_WIDTH = 512
MAX_KEYS = 18

# hit object type bits
TYPE_CIRCLE = 1
TYPE_HOLD = 128

EFFECT_KIAI = 1

# inherited points cannot express a stop; this is the slowest osu! accepts
MIN_SCROLL_MULTIPLIER = 0.01

_VERSION_LINE = re.compile(r'osu file format v(\d+)')

# key -> Metadata field
_GENERAL_FIELDS: Mapping[str, str] = {
	'AudioFilename': 'audio_file',
}
_METADATA_FIELDS: Mapping[str, str] = {
	'Title': 'title',
	'TitleUnicode': 'title_alt',
	'Artist': 'artist',
	'ArtistUnicode': 'artist_alt',
	'Creator': 'creator',
	'Source': 'source',
}


@attr.s(auto_attribs=True, frozen=True, slots=True)
class _Line:
	number: int
	text: str


# parsing

def _sections(text: str) -> Dict[str, List[_Line]]:
	sections: Dict[str, List[_Line]] = {}
	current: Optional[List[_Line]] = None
	seen_version = False

	for il, raw_line in enumerate(text.split('\n'), 1):
		line = raw_line.strip()
		if not line or line.startswith('//'):
			continue
		if line.startswith('[') and line.endswith(']'):
			name = line[1:-1].strip()
			if name not in SECTIONS:
				raise ParseError(
					ParseErrorKind.UNKNOWN_SECTION, f"unknown section '[{name}]'", SourcePosition(il, 1),
					expected=', '.join(SECTIONS), found=name,
				)
			current = sections.setdefault(name, [])
		elif current is not None:
			current.append(_Line(il, line))
		elif not seen_version and _VERSION_LINE.fullmatch(line):
			seen_version = True
		else:
			raise ParseError(
				ParseErrorKind.MALFORMED_HEADER, 'text before the first section', SourcePosition(il, 1),
				expected="'osu file format vN' or a [Section]", found=line,
			)
	return sections


def _key_values(sections: Mapping[str, List[_Line]], section: str) -> Dict[str, _Line]:
	'''``Key: value`` lines of a section; each result line holds the value only'''
	values: Dict[str, _Line] = {}
	for line in sections.get(section, []):
		key, sep, value = line.text.partition(':')
		if not sep:
			raise ParseError(
				ParseErrorKind.MALFORMED_HEADER, f'[{section}] entry is not a key-value pair',
				SourcePosition(line.number), expected='Key: value', found=line.text,
			)
		values[key.strip()] = _Line(line.number, value.strip())
	return values


def _position(section: str, key: str, line: Optional[_Line]) -> SourcePosition:
	return SourcePosition(line.number if line else None, key_path=(section, key))


def _key_count(sections: Mapping[str, List[_Line]]) -> int:
	general = _key_values(sections, 'General')
	mode_line = general.get('Mode')
	mode = 0
	if mode_line is not None:
		mode = common.parse_int(mode_line.text, 'mode', _position('General', 'Mode', mode_line))
	if mode != MANIA_MODE:
		raise ParseError(
			ParseErrorKind.UNSUPPORTED_MODE, 'only osu!mania beatmaps can be converted',
			_position('General', 'Mode', mode_line), expected=f'{MANIA_MODE} (mania)', found=str(mode),
		)

	circle_size = _key_values(sections, 'Difficulty').get('CircleSize')
	if circle_size is None:
		raise ParseError(
			ParseErrorKind.MISSING_REQUIRED_FIELD, 'beatmap has no key count',
			_position('Difficulty', 'CircleSize', None), expected='CircleSize', found='nothing',
		)
	return common.parse_int(circle_size.text, 'key count', _position('Difficulty', 'CircleSize', circle_size))


def _metadata(sections: Mapping[str, List[_Line]], diagnostics: List[str]) -> Tuple[Metadata, str]:
	fields: Dict[str, object] = {}
	extra: Dict[str, str] = {}
	label = ''

	for section in ('General', 'Editor', 'Metadata', 'Difficulty', 'Colours'):
		for key, line in _key_values(sections, section).items():
			if section == 'General' and key in _GENERAL_FIELDS:
				fields[_GENERAL_FIELDS[key]] = line.text
			elif section == 'General' and key == 'PreviewTime':
				preview = common.parse_int(line.text, 'preview time', _position(section, key, line))
				if preview >= 0:
					fields['preview_time_ms'] = float(preview)
			elif section == 'Metadata' and key in _METADATA_FIELDS:
				fields[_METADATA_FIELDS[key]] = line.text
			elif section == 'Metadata' and key == 'Tags':
				fields['tags'] = line.text.split()
			elif section == 'Metadata' and key == 'Version':
				label = line.text
			elif (section, key) not in (('General', 'Mode'), ('Difficulty', 'CircleSize')):
				extra[f'osu.{section}.{key}'] = line.text

	dropped = 0
	for line in sections.get('Events', []):
		event = [f.strip() for f in line.text.split(',')]
		if event[0] in ('0', 'Background') and len(event) >= 3 and 'background_file' not in fields:
			fields['background_file'] = event[2].strip('"')
		else:
			dropped += 1
	if dropped:
		diagnostics.append(f'{dropped} event(s) dropped (videos, breaks, storyboard)')

	return Metadata(**fields, source_format=Format.OSU, extra=extra), label # type: ignore


def _fields(line: _Line, minimum: int, expected: str) -> List[str]:
	fields = [f.strip() for f in line.text.split(',')]
	if len(fields) < minimum:
		raise ParseError(
			ParseErrorKind.TRUNCATED, f'record has {len(fields)} of {minimum} required fields',
			SourcePosition(line.number), expected=expected, found=line.text,
		)
	return fields


def _optional_int(fields: Sequence[str], index: int, default: int, what: str, position: SourcePosition) -> int:
	if len(fields) > index and fields[index]:
		return common.parse_int(fields[index], what, position)
	return default


def _timing(
	sections: Mapping[str, List[_Line]], diagnostics: List[str]
) -> Tuple[List[TimingPoint], List[ScrollVelocity]]:
	points: List[TimingPoint] = []
	velocities: List[ScrollVelocity] = []
	kiai = 0

	for line in sections.get('TimingPoints', []):
		fields = _fields(line, 2, 'time,beatLength,meter,sampleSet,sampleIndex,volume,uninherited,effects')
		position = SourcePosition(line.number)
		time = common.parse_float(fields[0], 'timing point time', position)
		beat_length = common.parse_float(fields[1], 'beat length', position)
		meter = _optional_int(fields, 2, 4, 'meter', position)
		if _optional_int(fields, 7, 0, 'effects', position) & EFFECT_KIAI:
			kiai += 1

		if beat_length == 0:
			raise ParseError(
				ParseErrorKind.INVALID_NUMBER, 'beat length of zero', position,
				expected='a non-zero beat length', found=fields[1],
			)
		# older files have no flag and mark inherited points by a negative beat length
		if len(fields) > 6 and fields[6]:
			uninherited = _optional_int(fields, 6, 1, 'uninherited flag', position) != 0
		else:
			uninherited = beat_length > 0
		if uninherited:
			points.append(TimingPoint(time, 60000 / beat_length, meter))
		else:
			velocities.append(ScrollVelocity(time, -100 / beat_length))

	if kiai:
		diagnostics.append(f'kiai on {kiai} timing point(s) dropped')
	return points, velocities


def _notes(sections: Mapping[str, List[_Line]], key_count: int, diagnostics: List[str]) -> List[Note]:
	notes: List[Note] = []
	others = hitsounds = 0

	for line in sections.get('HitObjects', []):
		fields = _fields(line, 5, 'x,y,time,type,hitSound,objectParams,hitSample')
		position = SourcePosition(line.number)
		x = common.parse_float(fields[0], 'x position', position)
		time = common.parse_float(fields[2], 'hit object time', position)
		kind = common.parse_int(fields[3], 'hit object type', position)
		if common.parse_int(fields[4], 'hit sound', position):
			hitsounds += 1

		lane = min(max(floor(x * key_count / PLAYFIELD_WIDTH), 0), key_count - 1)
		if kind & TYPE_HOLD:
			if len(fields) < 6 or not fields[5]:
				raise ParseError(
					ParseErrorKind.TRUNCATED, 'hold has no end time', position,
					expected='endTime:hitSample', found=line.text,
				)
			end = common.parse_float(fields[5].split(':')[0], 'hold end time', position)
			notes.append(Note.hold(time, end, lane))
		elif kind & TYPE_CIRCLE:
			notes.append(Note.tap(time, lane))
		else:
			others += 1

	if others:
		diagnostics.append(f'{others} hit object(s) that are neither notes nor holds dropped')
	if hitsounds:
		diagnostics.append(f'hit sounds on {hitsounds} note(s) dropped')
	return sorted(notes, key=lambda n: (n.time_ms, n.lane))


def parse(data: bytes) -> Chart:
	'''A mania beatmap.

	Raises:
		ParseError: the beatmap is malformed or not in mania mode
	'''
	sections = _sections(common.decode(data))
	key_count = _key_count(sections)

	diagnostics: List[str] = []
	metadata, label = _metadata(sections, diagnostics)
	points, velocities = _timing(sections, diagnostics)
	notes = _notes(sections, key_count, diagnostics)

	_logger.debug(f'parsed beatmap: {key_count} keys, {len(points)} timing points, {len(notes)} notes')
	return Chart(
		key_count = key_count,
		timing_points = points,
		notes = notes,
		metadata = metadata,
		difficulty_label = label,
		scroll_velocities = velocities,
		diagnostics = diagnostics,
	)


# writing

def _section(
	name: str, sep: str,
	values: Sequence[Tuple[str, str]],
	defaults: Mapping[str, str],
	passthrough: Mapping[str, str],
) -> List[str]:
	'''Lines of a key-value section.

	Passthrough values replace defaults and add keys, but never replace ``values``.
	'''
	rest = {k: common.single_line(v) for k, v in passthrough.items()}
	lines = [f'[{name}]']
	for key, value in values:
		rest.pop(key, None)
		lines.append(f'{key}{sep}{value}')
	for key, value in defaults.items():
		lines.append(f'{key}{sep}{rest.pop(key, value)}')
	lines.extend(f'{key}{sep}{value}' for key, value in rest.items())
	return lines + ['']


def _header(chart: Chart, options: WriteOptions, report: Report) -> List[str]:
	m = chart.metadata
	preview = -1 if m.preview_time_ms is None else round(m.preview_time_ms)

	lines = [f'osu file format v{options.osu_format_version}', '']
	lines += _section('General', ': ', [
		('AudioFilename', common.single_line(m.audio_file)),
		('PreviewTime', str(preview)),
		('Mode', str(MANIA_MODE)),
	], {
		'AudioLeadIn': '0',
		'Countdown': '0',
		'SampleSet': 'Soft',
		'StackLeniency': '0.7',
		'LetterboxInBreaks': '0',
		'SpecialStyle': '0',
		'WidescreenStoryboard': '1',
	}, m.extra_for('osu.General'))
	lines += _section('Editor', ': ', [], {
		'DistanceSpacing': '1',
		'BeatDivisor': '4',
		'GridSize': '4',
		'TimelineZoom': '1',
	}, m.extra_for('osu.Editor'))
	lines += _section('Metadata', ':', [
		('Title', common.required_text(m.title, options.default_title, 'metadata.title', report)),
		('TitleUnicode', common.single_line(m.title_alt)),
		('Artist', common.required_text(m.artist, options.default_artist, 'metadata.artist', report)),
		('ArtistUnicode', common.single_line(m.artist_alt)),
		('Creator', common.required_text(m.creator, options.default_creator, 'metadata.creator', report)),
		('Version', common.required_text(
			chart.difficulty_label, options.default_difficulty, 'difficulty_label', report)),
		('Source', common.single_line(m.source)),
		('Tags', ' '.join(m.tags)),
	], {
		'BeatmapID': '0',
		'BeatmapSetID': '-1',
	}, m.extra_for('osu.Metadata'))
	lines += _section('Difficulty', ':', [
		('CircleSize', str(chart.key_count)),
	], {
		'HPDrainRate': '8',
		'OverallDifficulty': '8',
		'ApproachRate': '5',
		'SliderMultiplier': '1.4',
		'SliderTickRate': '1',
	}, m.extra_for('osu.Difficulty'))

	lines += ['[Events]', '//Background and Video events']
	if m.background_file:
		lines.append(f'0,0,"{common.single_line(m.background_file)}",0,0')
	lines += ['//Break Periods', '//Storyboard Layer 0 (Background)', '//Storyboard Sound Samples', '']

	colours = m.extra_for('osu.Colours')
	if colours:
		lines += _section('Colours', ' : ', [], {}, colours)

	common.report_dropped(report, Format.OSU, [('metadata.subtitle', m.subtitle), ('metadata.genre', m.genre)])
	common.report_foreign_extra(chart, Format.OSU, report)
	return lines


def _timing_lines(chart: Chart, options: WriteOptions, report: Report) -> List[str]:
	records: List[Tuple[int, int, str]] = [] # (time, inherited, line)
	drifts: List[float] = []

	for tp in chart.timing_points:
		time = round(tp.time_ms)
		drifts.append(abs(time - tp.time_ms))
		records.append((time, 0, f'{time},{common.format_number(tp.beat_length_ms)},{tp.meter},1,0,100,1,0'))

	point_times = [tp.time_ms for tp in chart.timing_points]
	floored = 0
	for sv in chart.scroll_velocities:
		time = round(sv.time_ms)
		drifts.append(abs(time - sv.time_ms))
		multiplier = sv.multiplier
		if multiplier < MIN_SCROLL_MULTIPLIER:
			floored += 1
			multiplier = MIN_SCROLL_MULTIPLIER
		meter = chart.timing_points[max(bisect_right(point_times, sv.time_ms) - 1, 0)].meter
		records.append((time, 1, f'{time},{common.format_number(-100 / multiplier)},{meter},1,0,100,0,0'))

	if floored:
		report.add(Stage.WRITE, 'scroll_velocities',
			f'{floored} scroll velocity change(s) below {MIN_SCROLL_MULTIPLIER} written as {MIN_SCROLL_MULTIPLIER}')
	common.report_drift(report, 'timing_points', drifts, options.drift_tolerance_ms)

	records.sort(key=lambda r: r[:2])
	return ['[TimingPoints]'] + [r[2] for r in records] + ['']


def column_x(lane: int, key_count: int) -> int:
	'''x coordinate of the centre of a lane; reads back as the same lane'''
	return (2 * lane + 1) * (PLAYFIELD_WIDTH // 2) // key_count


def _hit_object_lines(chart: Chart, options: WriteOptions, report: Report) -> List[str]:
	lines = ['[HitObjects]']
	drifts: List[float] = []
	collapsed = 0

	for note in chart.notes:
		x = column_x(note.lane, chart.key_count)
		time = round(note.time_ms)
		drifts.append(abs(time - note.time_ms))
		if note.is_hold:
			end = round(note.end_time_ms)
			drifts.append(abs(end - note.end_time_ms))
			if end > time:
				lines.append(f'{x},192,{time},{TYPE_HOLD},0,{end}:0:0:0:0:')
				continue
			collapsed += 1
		lines.append(f'{x},192,{time},{TYPE_CIRCLE},0,0:0:0:0:')

	if collapsed:
		report.add(Stage.WRITE, 'notes', f'{collapsed} hold(s) shorter than a millisecond written as taps')
	common.report_drift(report, 'notes', drifts, options.drift_tolerance_ms)
	return lines


def write(chart: Chart, options: WriteOptions) -> Tuple[bytes, Report]:
	'''A mania beatmap with integer millisecond times.

	Raises:
		WriteError: the chart has no timing points or too many lanes
	'''
	report = Report()
	common.require_timing(chart, Format.OSU)
	common.check_key_count(chart, Format.OSU, range(1, MAX_KEYS + 1))

	lines = _header(chart, options, report)
	lines += _timing_lines(chart, options, report)
	lines += _hit_object_lines(chart, options, report)

	_logger.debug(f'wrote beatmap: {len(chart.notes)} notes, {len(report)} notice(s)')
	return common.encode(lines), report
