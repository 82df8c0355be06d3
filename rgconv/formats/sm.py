'''StepMania ``.sm`` simfiles

One file holds shared timing and metadata plus any number of ``#NOTES`` charts.
Notes are placed by beat; beats become milliseconds through ``#OFFSET``,
``#BPMS`` and ``#STOPS``.
'''

import logging
from collections import Counter
from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN
from fractions import Fraction
from math import ceil
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Tuple

import attr

from .. import msd, notedata
from ..chart import Chart, Format, Metadata, Note, ScrollVelocity, TimingPoint
from ..errors import ParseError, ParseErrorKind, SourcePosition, Stage
from ..notedata import BEATS_PER_MEASURE, NoteData, NoteRow
from ..options import WriteOptions
from ..report import Report
from ..timing import TimingMap
from . import common


_logger = logging.getLogger(__name__)


# steps type -> lane count
STEPS_TYPES: Mapping[str, int] = {
	'dance-threepanel': 3,
	'dance-single': 4,
	'pump-single': 5,
	'pnm-five': 5,
	'dance-solo': 6,
	'pump-halfdouble': 6,
	'kb7-single': 7,
	'dance-double': 8,
	'dance-couple': 8,
	'techno-single8': 8,
	'pnm-nine': 9,
	'pump-double': 10,
}

_WRITE_STEPS_TYPES: Mapping[int, str] = {
	3: 'dance-threepanel',
	4: 'dance-single',
	5: 'pump-single',
	6: 'dance-solo',
	7: 'kb7-single',
	8: 'dance-double',
	9: 'pnm-nine',
	10: 'pump-double',
}

DIFFICULTIES = ('Beginner', 'Easy', 'Medium', 'Hard', 'Challenge', 'Edit')

SM_INDENT = '     '

# header tag -> Metadata field, in writing order
_TEXT_TAGS: Mapping[str, str] = {
	'TITLE': 'title',
	'SUBTITLE': 'subtitle',
	'ARTIST': 'artist',
	'TITLETRANSLIT': 'title_alt',
	'ARTISTTRANSLIT': 'artist_alt',
	'GENRE': 'genre',
	'CREDIT': 'creator',
	'MUSIC': 'audio_file',
	'BACKGROUND': 'background_file',
}
_TIMING_TAGS = frozenset({'OFFSET', 'BPMS', 'STOPS', 'SAMPLESTART'})

# per-chart fields, kept as passthrough so that sm -> sm keeps them
_CHART_TAGS = ('STEPSTYPE', 'DIFFICULTY', 'METER')

# note character -> (name, what happens to it)
_SPECIAL_NOTES: Mapping[str, Tuple[str, str]] = {
	'4': ('roll', 'read as holds'),
	'L': ('lift', 'read as taps'),
	'M': ('mine', 'dropped'),
	'F': ('fake', 'dropped'),
	'K': ('keysound', 'dropped'),
}


# parsing

def _value_tokens(item: msd.MSDItem, sep: str) -> Iterator[Tuple[int, str]]:
	'''Non-empty ``sep``-separated tokens of a value, with their line numbers'''
	line = item.line
	for token in item.value.split(sep):
		stripped = token.strip()
		if stripped:
			yield line + token[:len(token) - len(token.lstrip())].count('\n'), stripped
		line += token.count('\n')


def _decimal(token: str, what: str, line: int) -> Decimal:
	try:
		value = Decimal(token)
	except InvalidOperation:
		value = Decimal('NaN')
	if not value.is_finite():
		raise ParseError(
			ParseErrorKind.INVALID_NUMBER, f'invalid {what}', SourcePosition(line),
			expected='a decimal number', found=token,
		)
	return value


def _pairs(item: Optional[msd.MSDItem], what: str) -> List[Tuple[int, Decimal, Decimal]]:
	'''``beat=value`` list as (line, beat, value)'''
	if item is None:
		return []
	pairs = []
	for line, token in _value_tokens(item, ','):
		beat, sep, value = token.partition('=')
		if not sep:
			raise ParseError(
				ParseErrorKind.MALFORMED_HEADER, f'#{item.tag} entry is not a pair', SourcePosition(line),
				expected='beat=value', found=token,
			)
		pairs.append((line, _decimal(beat.strip(), 'beat', line), _decimal(value.strip(), what, line)))
	return pairs


@attr.s(auto_attribs=True, frozen=True, slots=True)
class _SongTiming:
	timing: TimingMap
	points: List[TimingPoint]
	velocities: List[ScrollVelocity]
	diagnostics: List[str]


def _song_timing(header: Mapping[str, msd.MSDItem]) -> _SongTiming:
	bpms_item = header.get('BPMS')
	if bpms_item is None:
		raise ParseError(
			ParseErrorKind.MISSING_REQUIRED_FIELD, 'simfile has no #BPMS', SourcePosition(1),
			expected='#BPMS', found='nothing',
		)
	bpms = _pairs(bpms_item, 'BPM')
	if not bpms:
		raise ParseError(
			ParseErrorKind.MISSING_REQUIRED_FIELD, '#BPMS is empty', SourcePosition(bpms_item.line),
			expected='at least one beat=BPM pair', found='nothing',
		)
	for line, _, bpm in bpms:
		if bpm == 0:
			raise ParseError(
				ParseErrorKind.INVALID_NUMBER, 'BPM of zero', SourcePosition(line),
				expected='a non-zero BPM', found=str(bpm),
			)
	stops = _pairs(header.get('STOPS'), 'stop length')

	offset = Decimal(0)
	offset_item = header.get('OFFSET')
	if offset_item is not None and offset_item.value.strip():
		offset = _decimal(offset_item.value.strip(), 'offset', offset_item.line)

	tm = TimingMap.from_beats(
		float(-offset * 1000),
		[(beat, bpm) for _, beat, bpm in bpms],
		[(beat, float(seconds * 1000)) for _, beat, seconds in stops],
	)

	# input order is kept; the validator sorts and checks for conflicts
	points = [TimingPoint(tm.time_at(beat), float(bpm)) for _, beat, bpm in bpms]

	velocities: List[ScrollVelocity] = []
	diagnostics: List[str] = []
	for _, beat, seconds in stops:
		start = tm.time_at(beat)
		velocities.append(ScrollVelocity(start, 0.0))
		velocities.append(ScrollVelocity(start + float(seconds * 1000), 1.0))
	if stops:
		diagnostics.append(f'{len(stops)} stop(s) folded into note times and kept as scroll velocity pauses')

	return _SongTiming(tm, points, velocities, diagnostics)


def _metadata(header: Mapping[str, msd.MSDItem]) -> Metadata:
	fields: Dict[str, object] = {}
	extra: Dict[str, str] = {}
	for tag, item in header.items():
		value = item.value.strip()
		if tag in _TEXT_TAGS:
			fields[_TEXT_TAGS[tag]] = value
		elif tag == 'SAMPLESTART':
			if value:
				fields['preview_time_ms'] = float(_decimal(value, 'sample start', item.line) * 1000)
		elif tag not in _TIMING_TAGS and value:
			extra[f'sm.{tag}'] = value
	return Metadata(**fields, source_format=Format.SM, extra=extra) # type: ignore


def _notes(grid: NoteData[str], tm: TimingMap, diagnostics: List[str]) -> List[Note]:
	notes: List[Note] = []
	held: Dict[int, Tuple[float, int]] = {} # lane -> (start, line)
	special: Counter = Counter()
	stray_tails = 0

	for row in grid:
		time = tm.time_at(row.position)
		for lane, char in enumerate(row.notes):
			if char == notedata.EMPTY:
				continue
			if char in _SPECIAL_NOTES:
				special[char] += 1
			if char in ('1', 'L'):
				notes.append(Note.tap(time, lane))
			elif char in ('2', '4'):
				if lane in held:
					raise ParseError(
						ParseErrorKind.MALFORMED_NOTE_DATA, f'hold starts in lane {lane + 1} while another is held',
						SourcePosition(row.line), expected="'3'", found=char,
					)
				held[lane] = (time, row.line)
			elif char == '3':
				if lane not in held:
					stray_tails += 1
					continue
				start, _ = held.pop(lane)
				notes.append(Note.hold(start, time, lane))
			elif char not in _SPECIAL_NOTES:
				raise ParseError(
					ParseErrorKind.MALFORMED_NOTE_DATA, f'unknown note in lane {lane + 1}',
					SourcePosition(row.line), expected='one of 0 1 2 3 4 M L F K', found=char,
				)

	if held:
		lane, (_, line) = min(held.items(), key=lambda kv: kv[1][1])
		raise ParseError(
			ParseErrorKind.MALFORMED_NOTE_DATA, f'hold in lane {lane + 1} is never released',
			SourcePosition(line), expected="'3'", found='end of chart',
		)

	for char, count in sorted(special.items()):
		name, fate = _SPECIAL_NOTES[char]
		diagnostics.append(f'{count} {name}(s) {fate}')
	if stray_tails:
		diagnostics.append(f'{stray_tails} hold tail(s) without a head dropped')

	return sorted(notes, key=lambda n: (n.time_ms, n.lane))


def _chart(item: msd.MSDItem, metadata: Metadata, song: _SongTiming) -> Chart:
	fields = item.value.split(msd.MSDItem.END_TAG, 5)
	if len(fields) != 6:
		raise ParseError(
			ParseErrorKind.MALFORMED_HEADER, '#NOTES is missing fields', SourcePosition(item.line),
			expected='6 colon-separated fields', found=str(len(fields)),
		)
	steps_type, description, difficulty, meter, _ = (f.strip() for f in fields[:5])
	grid_line = item.line + item.value.count('\n', 0, len(item.value) - len(fields[5]))
	grid = notedata.sm_to_notedata(fields[5], grid_line)

	diagnostics = list(song.diagnostics)
	key_count = STEPS_TYPES.get(steps_type.lower())
	if key_count is None:
		key_count = grid.width
		diagnostics.append(f"unknown steps type '{steps_type}', lane count taken from the note rows")
	elif grid.width and grid.width != key_count:
		first = next(iter(grid))
		raise ParseError(
			ParseErrorKind.MALFORMED_NOTE_DATA, f"rows do not fit steps type '{steps_type}'",
			SourcePosition(first.line), expected=f'{key_count} columns', found=first.notes,
		)

	extra = dict(metadata.extra)
	for tag, value in zip(_CHART_TAGS, (steps_type, difficulty, meter)):
		if value:
			extra[f'sm.{tag}'] = value

	return Chart(
		key_count = key_count,
		timing_points = song.points,
		notes = _notes(grid, song.timing, diagnostics),
		metadata = attr.evolve(metadata, extra=extra),
		difficulty_label = description or difficulty,
		scroll_velocities = song.velocities,
		diagnostics = diagnostics,
	)


def parse(data: bytes) -> List[Chart]:
	'''Every chart of a simfile, in file order.

	Raises:
		ParseError: the simfile is malformed
	'''
	text = common.decode(data)

	header: Dict[str, msd.MSDItem] = {}
	chart_items: List[msd.MSDItem] = []
	for item in msd.text_to_msd(text):
		tag = item.tag.upper()
		if tag == 'NOTES':
			chart_items.append(item)
		else:
			header[tag] = item # later duplicates win, as in SM

	if not chart_items:
		raise ParseError(
			ParseErrorKind.MISSING_REQUIRED_FIELD, 'simfile has no charts',
			SourcePosition(text.count('\n') + 1), expected='#NOTES', found='end of file',
		)

	song = _song_timing(header)
	metadata = _metadata(header)
	charts = [_chart(item, metadata, song) for item in chart_items]
	_logger.debug(f'parsed simfile: {len(charts)} chart(s), {len(song.points)} BPM change(s)')
	return charts


# writing

def _quantizer(places: int) -> Callable[[float], Decimal]:
	quantum = Decimal(1).scaleb(-places)

	def quantize(value: float) -> Decimal:
		d = Decimal(repr(float(value))).quantize(quantum, rounding=ROUND_HALF_EVEN)
		return d.copy_abs() if d.is_zero() else d
	return quantize


@attr.s(auto_attribs=True, frozen=True, slots=True)
class _WrittenTiming:
	offset: Decimal # seconds
	bpms: List[Tuple[Decimal, Decimal]]
	timing: TimingMap # as a reader of the written text will see it


def _write_timing(chart: Chart, options: WriteOptions, report: Report) -> _WrittenTiming:
	quantize = _quantizer(options.sm_decimal_places)
	smallest = Decimal(1).scaleb(-options.sm_decimal_places)

	first = chart.timing_points[0]
	bpm0 = max(quantize(first.bpm), smallest)

	# SM cannot place notes before beat 0, so move beat 0 back by whole measures
	earliest = min((n.time_ms for n in chart.notes), default=first.time_ms)
	measure_ms = BEATS_PER_MEASURE * 60000 / float(bpm0)
	shift = max(0, ceil((first.time_ms - earliest) / measure_ms))
	offset = quantize(-(first.time_ms - shift * measure_ms) / 1000)
	if shift:
		report.add(Stage.WRITE, 'timing_points',
			f'notes before the first timing point: beat 0 moved back {shift} measure(s), '
			f'first timing point now at {float(-offset * 1000)} ms')

	written = [(quantize(0), bpm0)]
	tm = TimingMap.from_beats(-float(offset) * 1000, written)
	drifts: List[float] = []
	for tp in chart.timing_points[1:]:
		beat = quantize(tm.beat_at(tp.time_ms))
		bpm = max(quantize(tp.bpm), smallest)
		if beat == written[-1][0]:
			report.add(Stage.WRITE, 'timing_points',
				f'timing point at {tp.time_ms} ms rounds onto the previous one and replaces it')
			written[-1] = (beat, bpm)
			tm = TimingMap.from_beats(tm.origin_ms, written)
		else:
			written.append((beat, bpm))
			tm = tm.with_change(beat, bpm)
		drifts.append(abs(tm.time_at(beat) - tp.time_ms))
	common.report_drift(report, 'timing_points', drifts, options.drift_tolerance_ms)

	meters = sorted({tp.meter for tp in chart.timing_points if tp.meter != BEATS_PER_MEASURE})
	if meters:
		report.add(Stage.WRITE, 'timing_points.meter',
			f'measures are always {BEATS_PER_MEASURE} beats in sm, meter(s) {meters} dropped')

	return _WrittenTiming(offset, written, tm)


def _write_grid(chart: Chart, tm: TimingMap, options: WriteOptions, report: Report) -> NoteData[str]:
	rows_per_beat = options.sm_rows_per_measure // BEATS_PER_MEASURE

	def snap(time_ms: float) -> Tuple[Fraction, float]:
		position = max(Fraction(round(tm.beat_at(time_ms) * rows_per_beat), rows_per_beat), Fraction(0))
		return position, abs(tm.time_at(position) - time_ms)

	rows: Dict[Fraction, List[str]] = {}
	busy_until: Dict[int, Fraction] = {}
	drifts: List[float] = []
	collapsed = collisions = 0

	def row_at(position: Fraction) -> List[str]:
		return rows.setdefault(position, [notedata.EMPTY] * chart.key_count)

	for note in chart.notes:
		start, drift = snap(note.time_ms)
		if note.lane in busy_until and start <= busy_until[note.lane]:
			collisions += 1
			continue
		drifts.append(drift)

		end = start
		if note.is_hold:
			end, drift = snap(note.end_time_ms)
			drifts.append(drift)
			if end == start:
				collapsed += 1

		if end == start:
			row_at(start)[note.lane] = '1'
		else:
			row_at(start)[note.lane] = '2'
			row_at(end)[note.lane] = '3'
		busy_until[note.lane] = end

	if collisions:
		report.add(Stage.WRITE, 'notes', f'{collisions} note(s) overlapping another in the same lane dropped')
	if collapsed:
		report.add(Stage.WRITE, 'notes', f'{collapsed} hold(s) shorter than one row written as taps')
	common.report_drift(report, 'notes', drifts, options.drift_tolerance_ms)

	return NoteData([NoteRow(position, ''.join(row)) for position, row in rows.items()])


def _safe(text: str) -> str:
	'''Keep a value from closing its tag early or hiding behind a comment'''
	return text.replace(msd.MSDItem.END_VALUE, ',').replace(msd.MSDItem.COMMENT, '/')


def _header_text(value: str, subject: str, report: Report) -> str:
	text = common.single_line(value)
	if _safe(text) != text:
		report.add(Stage.WRITE, subject, 'characters that sm reserves were replaced')
	return _safe(text)


def _chart_text(value: str) -> str:
	return _safe(common.single_line(value)).replace(msd.MSDItem.END_TAG, ' ').strip()


def _header(chart: Chart, timing: _WrittenTiming, options: WriteOptions, report: Report) -> List[msd.MSDItem]:
	m = chart.metadata
	title = common.required_text(m.title, options.default_title, 'metadata.title', report)

	items = [
		msd.MSDItem(tag, _header_text(title if tag == 'TITLE' else getattr(m, field), f'metadata.{field}', report))
		for tag, field in _TEXT_TAGS.items()
	]
	items.append(msd.MSDItem('OFFSET', str(timing.offset)))
	if m.preview_time_ms is not None:
		items.append(msd.MSDItem('SAMPLESTART', str(_quantizer(options.sm_decimal_places)(m.preview_time_ms / 1000))))

	for tag, value in m.extra_for('sm').items():
		if tag in _CHART_TAGS or tag in _TEXT_TAGS or tag in _TIMING_TAGS or tag == 'NOTES':
			continue
		items.append(msd.MSDItem(tag, _safe(value)))

	items.append(msd.MSDItem('BPMS', ',\n'.join(f'{beat}={bpm}' for beat, bpm in timing.bpms)))
	items.append(msd.MSDItem('STOPS', ''))

	common.report_dropped(report, Format.SM, [('metadata.source', m.source), ('metadata.tags', m.tags)])
	if chart.scroll_velocities:
		report.add(Stage.WRITE, 'scroll_velocities',
			f'{len(chart.scroll_velocities)} scroll velocity change(s) dropped, sm has no scroll speed changes')
	common.report_foreign_extra(chart, Format.SM, report)
	return items


def _notes_item(chart: Chart, grid: NoteData[str]) -> msd.MSDItem:
	extra = chart.metadata.extra_for('sm')
	label = _chart_text(chart.difficulty_label)

	steps_type = extra.get('STEPSTYPE', '')
	if STEPS_TYPES.get(steps_type.lower()) != chart.key_count:
		steps_type = _WRITE_STEPS_TYPES[chart.key_count]

	canonical = {d.lower(): d for d in DIFFICULTIES}
	difficulty = canonical.get(label.lower()) or canonical.get(extra.get('DIFFICULTY', '').lower(), 'Edit')

	meter = extra.get('METER', '')
	if not meter.isdigit():
		meter = '1'

	end = msd.MSDItem.END_TAG
	notes = (
		'\n'
		f'{SM_INDENT}{steps_type}{end}\n'
		f'{SM_INDENT}{label}{end}\n'
		f'{SM_INDENT}{difficulty}{end}\n'
		f'{SM_INDENT}{meter}{end}\n'
		f'{SM_INDENT}0,0,0,0,0{end}\n' # radar values are recomputed by SM
	) + notedata.notedata_to_sm(grid) + '\n'
	return msd.MSDItem('NOTES', notes)


def write(chart: Chart, options: WriteOptions) -> Tuple[bytes, Report]:
	'''A single-chart simfile.

	Note times are snapped to the row grid of the written, rounded timing,
	so reading the output back gives the times a player would hear.

	Raises:
		WriteError: the chart has no timing points or an unsupported lane count
	'''
	report = Report()
	common.require_timing(chart, Format.SM)
	common.check_key_count(chart, Format.SM, _WRITE_STEPS_TYPES)

	timing = _write_timing(chart, options, report)
	grid = _write_grid(chart, timing.timing, options, report)
	header = _header(chart, timing, options, report)

	text = msd.msd_to_text(header) + '\n' + str(_notes_item(chart, grid)) + '\n'
	_logger.debug(f'wrote simfile: {len(grid)} rows, {len(report)} notice(s)')
	return text.encode('utf-8'), report
