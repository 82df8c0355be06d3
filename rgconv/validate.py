'''Normalization and consistency checks applied before any writer runs'''

import logging
import math
from typing import List, Tuple

import attr

from .chart import Chart, Note, NoteKind, TimingPoint
from .errors import IndexPath, SourcePosition, Stage, ValidationError, ValidationErrorKind as Kind
from .report import Notice, Report


_logger = logging.getLogger(__name__)


def _fail(kind: Kind, message: str, path: IndexPath, expected=None, found=None) -> ValidationError:
	return ValidationError(
		kind, message, SourcePosition(key_path=path),
		expected=expected, found=None if found is None else str(found),
	)


def _check_finite(path: IndexPath, value: float) -> None:
	if not math.isfinite(value):
		raise _fail(Kind.NON_FINITE_VALUE, 'value is not finite', path, 'a finite number', value)


def _check_structure(chart: Chart) -> None:
	if isinstance(chart.key_count, bool) or not isinstance(chart.key_count, int) or chart.key_count <= 0:
		raise _fail(Kind.INVALID_KEY_COUNT, 'key count must be a positive integer',
			('key_count',), 'at least 1', chart.key_count)
	if not chart.timing_points:
		raise _fail(Kind.EMPTY_TIMING_POINTS, 'chart has no timing points', ('timing_points',))
	if not chart.notes:
		raise _fail(Kind.EMPTY_NOTES, 'chart has no notes', ('notes',))


def _check_timing_points(chart: Chart) -> None:
	for i, tp in enumerate(chart.timing_points):
		_check_finite(('timing_points', i, 'time_ms'), tp.time_ms)
		_check_finite(('timing_points', i, 'bpm'), tp.bpm)
		if tp.bpm <= 0:
			raise _fail(Kind.INVALID_BPM, 'BPM must be positive', ('timing_points', i, 'bpm'), 'BPM > 0', tp.bpm)

	for i, sv in enumerate(chart.scroll_velocities):
		_check_finite(('scroll_velocities', i, 'time_ms'), sv.time_ms)
		_check_finite(('scroll_velocities', i, 'multiplier'), sv.multiplier)


def _check_notes(chart: Chart) -> None:
	for i, n in enumerate(chart.notes):
		_check_finite(('notes', i, 'time_ms'), n.time_ms)
		_check_finite(('notes', i, 'end_time_ms'), n.end_time_ms)
		if not 0 <= n.lane < chart.key_count:
			raise _fail(Kind.NOTE_OUT_OF_LANE_RANGE, 'lane is outside the chart',
				('notes', i, 'lane'), f'0 <= lane < {chart.key_count}', n.lane)
		if n.kind is NoteKind.TAP and n.end_time_ms != n.time_ms:
			raise _fail(Kind.INVALID_HOLD, 'tap has a duration',
				('notes', i, 'end_time_ms'), f'{n.time_ms}', n.end_time_ms)
		if n.end_time_ms < n.time_ms:
			raise _fail(Kind.INVALID_HOLD, 'hold ends before it starts',
				('notes', i, 'end_time_ms'), f'at least {n.time_ms}', n.end_time_ms)


def _dedupe_timing_points(points: List[TimingPoint], warnings: Report) -> List[TimingPoint]:
	kept: List[TimingPoint] = []
	for tp in points:
		if kept and kept[-1].time_ms == tp.time_ms:
			if kept[-1].bpm != tp.bpm:
				raise _fail(Kind.CONFLICTING_TIMING_POINT, f'two timing points at {tp.time_ms} ms',
					('timing_points',), f'BPM {kept[-1].bpm}', tp.bpm)
			warnings.add(Stage.VALIDATE, 'timing_points', f'dropped duplicate timing point at {tp.time_ms} ms')
			continue
		if tp.meter < 1:
			warnings.add(Stage.VALIDATE, 'timing_points', f'meter {tp.meter} at {tp.time_ms} ms replaced with 4')
			tp = attr.evolve(tp, meter=4)
		kept.append(tp)
	return kept


def _normalize_notes(notes: List[Note], warnings: Report) -> List[Note]:
	kept: List[Note] = []
	seen = set()
	for n in notes:
		if n.kind is NoteKind.HOLD and n.end_time_ms == n.time_ms:
			warnings.add(Stage.VALIDATE, 'notes', f'zero-length hold at {n.time_ms} ms in lane {n.lane} made a tap')
			n = Note.tap(n.time_ms, n.lane)
		if n in seen:
			warnings.add(Stage.VALIDATE, 'notes', f'dropped duplicate note at {n.time_ms} ms in lane {n.lane}')
			continue
		seen.add(n)
		kept.append(n)
	return kept


def validate(chart: Chart) -> Tuple[Chart, List[Notice]]:
	'''Check a chart and return it in normalized form with any non-fatal warnings.

	Timing points, notes and scroll velocities come back sorted by time
	(notes by time, then lane); out-of-order input is a warning, not an error.

	Raises:
		ValidationError: the chart cannot be made consistent
	'''
	warnings = Report()

	_check_structure(chart)
	_check_timing_points(chart)
	_check_notes(chart)

	points = sorted(chart.timing_points, key=lambda tp: tp.time_ms)
	if points != list(chart.timing_points):
		warnings.add(Stage.VALIDATE, 'timing_points', 'timing points were out of order and have been sorted')
	points = _dedupe_timing_points(points, warnings)

	notes = sorted(chart.notes, key=lambda n: (n.time_ms, n.lane))
	if notes != list(chart.notes):
		warnings.add(Stage.VALIDATE, 'notes', 'notes were out of order and have been sorted')
	notes = _normalize_notes(notes, warnings)

	velocities = sorted(chart.scroll_velocities, key=lambda sv: sv.time_ms)
	if velocities != list(chart.scroll_velocities):
		warnings.add(Stage.VALIDATE, 'scroll_velocities', 'scroll velocities were out of order and have been sorted')

	_logger.debug(
		f'validated chart: {chart.key_count} keys, {len(points)} timing points, '
		f'{len(notes)} notes, {len(warnings)} warnings'
	)
	return (
		attr.evolve(chart, timing_points=points, notes=notes, scroll_velocities=velocities),
		warnings.notices,
	)
