'''Quaver ``.qua`` maps

A ``.qua`` file is a YAML document. Quaver leaves out keys that hold their
default value, so most keys are optional here too.
'''

import logging
from typing import Any, Dict, List, Mapping, Tuple, Union

import yaml

from .. import keypath as kp
from ..chart import Chart, Format, Metadata, Note, ScrollVelocity, TimingPoint
from ..errors import ParseError, ParseErrorKind, SourcePosition, Stage
from ..options import WriteOptions
from ..report import Report
from . import common

try:
	from yaml import CSafeDumper as Dumper, CSafeLoader as Loader
except ImportError:
	from yaml import SafeDumper as Dumper, SafeLoader as Loader # type: ignore


_logger = logging.getLogger(__name__)


MODES: Mapping[str, int] = {'Keys4': 4, 'Keys7': 7}
SIGNATURES: Mapping[str, int] = {'Quadruple': 4, 'Triple': 3}

# key -> Metadata field
_TEXT_FIELDS: Mapping[str, str] = {
	'AudioFile': 'audio_file',
	'BackgroundFile': 'background_file',
	'Title': 'title',
	'Artist': 'artist',
	'Source': 'source',
	'Creator': 'creator',
	'Genre': 'genre',
}
_HANDLED = frozenset({
	'Mode', 'HasScratchKey', 'SongPreviewTime', 'Tags', 'DifficultyName', 'InitialScrollVelocity',
	'TimingPoints', 'SliderVelocities', 'HitObjects',
})
_DROPPED_LISTS = ('EditorLayers', 'CustomAudioSamples', 'SoundEffects', 'Bookmarks')

_NUMERIC_EXPECTATIONS = frozenset({'an integer', 'a number', 'a finite number'})


# parsing

def _check_signature(what) -> int:
	if isinstance(what, str) and what in SIGNATURES:
		return SIGNATURES[what]
	if isinstance(what, int) and not isinstance(what, bool) and what > 0:
		return what
	raise kp.CheckError(' or '.join(SIGNATURES), what)


def _parse_error(e: kp.KeyPathError) -> ParseError:
	position = SourcePosition(key_path=e.path)
	if e.missing:
		return ParseError(
			ParseErrorKind.MISSING_REQUIRED_FIELD, e.message, position,
			expected=f"'{e.path[-1]}'", found='nothing',
		)
	kind = ParseErrorKind.INVALID_NUMBER if e.expected in _NUMERIC_EXPECTATIONS else ParseErrorKind.MALFORMED_STRUCTURE
	return ParseError(kind, e.message, position, expected=e.expected, found=e.found)


def _load(text: str) -> Any:
	try:
		doc = yaml.load(text, Loader = Loader)
	except yaml.MarkedYAMLError as e:
		mark = e.problem_mark or e.context_mark
		raise ParseError(
			ParseErrorKind.MALFORMED_STRUCTURE, f'invalid YAML: {e.problem}',
			SourcePosition(mark.line + 1, mark.column + 1) if mark else SourcePosition(),
			expected=e.context,
		) from None
	except yaml.YAMLError as e:
		raise ParseError(ParseErrorKind.MALFORMED_STRUCTURE, f'invalid YAML: {e}') from None
	if doc is None:
		raise ParseError(
			ParseErrorKind.TRUNCATED, 'document is empty', SourcePosition(1),
			expected='a mapping', found='nothing',
		)
	return doc


def _key_count(doc) -> int:
	mode = kp.get(doc, ('Mode',), kp.check_scalar_str)
	if mode not in MODES:
		raise ParseError(
			ParseErrorKind.UNSUPPORTED_MODE, f"unsupported mode '{mode}'", SourcePosition(key_path=('Mode',)),
			expected=' or '.join(MODES), found=mode,
		)
	return MODES[mode] + kp.get_optional(doc, ('HasScratchKey',), kp.check_bool, False)


def _metadata(doc: Mapping, diagnostics: List[str]) -> Metadata:
	fields: Dict[str, object] = {
		field: kp.get_optional(doc, (key,), kp.check_scalar_str, '')
		for key, field in _TEXT_FIELDS.items()
	}
	fields['tags'] = kp.get_optional(doc, ('Tags',), kp.check_scalar_str, '').split()

	preview = kp.get_optional(doc, ('SongPreviewTime',), kp.check_number, -1.0)
	if preview >= 0:
		fields['preview_time_ms'] = preview

	extra: Dict[str, str] = {}
	for raw_key, value in doc.items():
		key = str(raw_key)
		if key in _TEXT_FIELDS or key in _HANDLED or value is None:
			continue
		if key in _DROPPED_LISTS:
			if kp.get_sequence(doc, (raw_key,)):
				diagnostics.append(f'{key} dropped')
		elif isinstance(value, (list, dict)):
			if value:
				diagnostics.append(f'{key} dropped')
		else:
			extra[f'qua.{key}'] = kp.get(doc, (raw_key,), kp.check_scalar_str)

	return Metadata(**fields, source_format=Format.QUA, extra=extra) # type: ignore


def _timing(doc) -> Tuple[List[TimingPoint], List[ScrollVelocity]]:
	points = []
	for i, _ in enumerate(kp.get_sequence(doc, ('TimingPoints',))):
		path = ('TimingPoints', i)
		points.append(TimingPoint(
			kp.get_optional(doc, path + ('StartTime',), kp.check_number, 0.0),
			kp.get(doc, path + ('Bpm',), kp.check_number),
			kp.get_optional(doc, path + ('Signature',), _check_signature, 4),
		))

	velocities = []
	for i, _ in enumerate(kp.get_sequence(doc, ('SliderVelocities',))):
		path = ('SliderVelocities', i)
		velocities.append(ScrollVelocity(
			kp.get_optional(doc, path + ('StartTime',), kp.check_number, 0.0),
			kp.get_optional(doc, path + ('Multiplier',), kp.check_number, 0.0),
		))
	return points, velocities


def _notes(doc, diagnostics: List[str]) -> List[Note]:
	notes = []
	hitsounds = keysounds = 0
	for i, _ in enumerate(kp.get_sequence(doc, ('HitObjects',))):
		path = ('HitObjects', i)
		start = kp.get_optional(doc, path + ('StartTime',), kp.check_number, 0.0)
		lane = kp.get(doc, path + ('Lane',), kp.check_int) - 1
		end = kp.get_optional(doc, path + ('EndTime',), kp.check_number, 0.0)
		if kp.get_optional(doc, path + ('HitSound',), kp.check_scalar_str, 'Normal') != 'Normal':
			hitsounds += 1
		if kp.get_sequence(doc, path + ('KeySounds',)):
			keysounds += 1
		notes.append(Note.hold(start, end, lane) if end > 0 else Note.tap(start, lane))

	if hitsounds:
		diagnostics.append(f'hit sounds on {hitsounds} note(s) dropped')
	if keysounds:
		diagnostics.append(f'key sounds on {keysounds} note(s) dropped')
	return sorted(notes, key=lambda n: (n.time_ms, n.lane))


def parse(data: bytes) -> Chart:
	'''A Quaver map.

	Raises:
		ParseError: the document is not valid YAML, or a key is missing or of the wrong type
	'''
	doc = _load(common.decode(data))
	diagnostics: List[str] = []
	try:
		kp.get(doc, (), kp.check_mapping)
		key_count = _key_count(doc)
		metadata = _metadata(doc, diagnostics)
		points, velocities = _timing(doc)
		notes = _notes(doc, diagnostics)
		label = kp.get_optional(doc, ('DifficultyName',), kp.check_scalar_str, '')
		initial = kp.get_optional(doc, ('InitialScrollVelocity',), kp.check_number, 1.0)
	except kp.KeyPathError as e:
		raise _parse_error(e) from e

	if initial != 1.0:
		# applies until the first change, so it goes before everything else
		times = [tp.time_ms for tp in points] + [n.time_ms for n in notes] + [sv.time_ms for sv in velocities]
		velocities.insert(0, ScrollVelocity(min(times, default=0.0), initial))

	_logger.debug(f'parsed map: {key_count} keys, {len(points)} timing points, {len(notes)} notes')
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

def _number(value: float) -> Union[int, float]:
	return int(value) if float(value).is_integer() else float(value)


def _scalar(value: str) -> Any:
	'''Passthrough text back to the YAML type it was read as'''
	try:
		loaded = yaml.load(value, Loader = Loader)
	except yaml.YAMLError:
		return value
	if isinstance(loaded, (bool, int, float)) and kp.check_scalar_str(loaded) == value:
		return loaded
	return value


def _mode(key_count: int) -> Tuple[str, bool]:
	'''Mode name and scratch flag'''
	if key_count == MODES['Keys7'] + 1:
		return 'Keys7', True
	return next(mode for mode, keys in MODES.items() if keys == key_count), False


def _document(chart: Chart, options: WriteOptions, report: Report) -> Dict[str, Any]:
	m = chart.metadata
	extra = {k: _scalar(v) for k, v in m.extra_for('qua').items() if k not in _HANDLED and k not in _TEXT_FIELDS}
	mode, scratch = _mode(chart.key_count)

	doc: Dict[str, Any] = {
		'AudioFile': common.single_line(m.audio_file),
		'SongPreviewTime': -1 if m.preview_time_ms is None else round(m.preview_time_ms),
		'BackgroundFile': common.single_line(m.background_file),
		'MapId': extra.pop('MapId', -1),
		'MapSetId': extra.pop('MapSetId', -1),
		'Mode': mode,
	}
	if scratch:
		doc['HasScratchKey'] = True
	doc.update({
		'Title': common.required_text(m.title, options.default_title, 'metadata.title', report),
		'Artist': common.required_text(m.artist, options.default_artist, 'metadata.artist', report),
		'Source': common.single_line(m.source),
		'Tags': ' '.join(m.tags),
		'Creator': common.required_text(m.creator, options.default_creator, 'metadata.creator', report),
		'DifficultyName': common.required_text(
			chart.difficulty_label, options.default_difficulty, 'difficulty_label', report),
		'Description': extra.pop('Description', ''),
		'Genre': common.single_line(m.genre),
	})
	doc.update(extra)
	doc.update({
		'BPMDoesNotAffectScrollVelocity': doc.pop('BPMDoesNotAffectScrollVelocity', True),
		'InitialScrollVelocity': 1,
		'EditorLayers': [],
		'CustomAudioSamples': [],
		'SoundEffects': [],
	})

	common.report_dropped(report, Format.QUA, [
		('metadata.subtitle', m.subtitle),
		('metadata.title_alt', m.title_alt),
		('metadata.artist_alt', m.artist_alt),
	])
	common.report_foreign_extra(chart, Format.QUA, report)
	return doc


def _timing_points(chart: Chart, report: Report) -> List[Dict[str, Any]]:
	points = []
	meters = set()
	for tp in chart.timing_points:
		point: Dict[str, Any] = {'StartTime': _number(tp.time_ms), 'Bpm': float(tp.bpm)}
		if tp.meter == SIGNATURES['Triple']:
			point['Signature'] = 'Triple'
		elif tp.meter != SIGNATURES['Quadruple']:
			meters.add(tp.meter)
		points.append(point)
	if meters:
		report.add(Stage.WRITE, 'timing_points.meter',
			f'qua only has meters of 3 and 4 beats, meter(s) {sorted(meters)} written as 4')
	return points


def _hit_objects(chart: Chart, options: WriteOptions, report: Report) -> List[Dict[str, Any]]:
	objects = []
	drifts: List[float] = []
	collapsed = 0
	for note in chart.notes:
		start = round(note.time_ms)
		drifts.append(abs(start - note.time_ms))
		obj: Dict[str, Any] = {'StartTime': start, 'Lane': note.lane + 1}
		if note.is_hold:
			end = round(note.end_time_ms)
			drifts.append(abs(end - note.end_time_ms))
			if end > start:
				obj['EndTime'] = end
			else:
				collapsed += 1
		obj['KeySounds'] = []
		objects.append(obj)

	if collapsed:
		report.add(Stage.WRITE, 'notes', f'{collapsed} hold(s) shorter than a millisecond written as taps')
	common.report_drift(report, 'notes', drifts, options.drift_tolerance_ms)
	return objects


def write(chart: Chart, options: WriteOptions) -> Tuple[bytes, Report]:
	'''A Quaver map in Quaver's key order.

	Raises:
		WriteError: the chart has no timing points, or a lane count other than 4, 7 or 8
	'''
	report = Report()
	common.require_timing(chart, Format.QUA)
	common.check_key_count(chart, Format.QUA, [4, 7, 8])

	doc = _document(chart, options, report)
	doc['TimingPoints'] = _timing_points(chart, report)
	doc['SliderVelocities'] = [
		{'StartTime': _number(sv.time_ms), 'Multiplier': float(sv.multiplier)}
		for sv in chart.scroll_velocities
	]
	doc['HitObjects'] = _hit_objects(chart, options, report)

	text = yaml.dump(
		doc, Dumper = Dumper,
		sort_keys = False, allow_unicode = True, default_flow_style = False, width = 4096,
	)
	_logger.debug(f'wrote map: {len(chart.notes)} notes, {len(report)} notice(s)')
	return text.encode('utf-8'), report
