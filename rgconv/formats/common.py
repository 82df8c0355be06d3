'''Helpers shared by the format modules'''

import math
from typing import Iterable, Optional, Tuple

from ..chart import Chart, Format
from ..errors import ParseError, ParseErrorKind, SourcePosition, Stage, WriteError, WriteErrorKind
from ..report import Report


def decode(data: bytes) -> str:
	'''UTF-8 (with or without BOM) to text, with universal newlines'''
	try:
		text = data.decode('utf-8-sig')
	except UnicodeDecodeError as e:
		line = data[:e.start].count(b'\n') + 1
		column = e.start - (data.rfind(b'\n', 0, e.start) + 1) + 1
		raise ParseError(
			ParseErrorKind.INVALID_ENCODING, 'input is not valid UTF-8',
			SourcePosition(line, column), expected='UTF-8 text', found=repr(data[e.start:e.end]),
		) from None
	if not text.strip():
		raise ParseError(
			ParseErrorKind.TRUNCATED, 'input is empty',
			SourcePosition(1), expected='chart data', found='end of input',
		)
	return text.replace('\r\n', '\n').replace('\r', '\n')


def encode(lines: Iterable[str]) -> bytes:
	return ''.join(line + '\n' for line in lines).encode('utf-8')


def parse_float(token: str, what: str, position: SourcePosition) -> float:
	'''Finite decimal number; anything else is an :attr:`~.ParseErrorKind.INVALID_NUMBER`'''
	try:
		value = float(token)
	except ValueError:
		value = math.nan
	if not math.isfinite(value):
		raise ParseError(ParseErrorKind.INVALID_NUMBER, f'invalid {what}', position,
			expected='a finite number', found=token)
	return value


def parse_int(token: str, what: str, position: SourcePosition) -> int:
	'''Integer, also accepting integral decimals such as ``4.0``'''
	value = parse_float(token, what, position)
	if not value.is_integer():
		raise ParseError(ParseErrorKind.INVALID_NUMBER, f'invalid {what}', position,
			expected='an integer', found=token)
	return int(value)


def format_number(value: float) -> str:
	'''Shortest text that reads back as ``value``, without a fraction when integral'''
	if float(value).is_integer():
		return str(int(value))
	return repr(float(value))


def single_line(value: str) -> str:
	return ' '.join(value.split('\n')).strip()


def require_timing(chart: Chart, target: Format) -> None:
	if not chart.timing_points:
		raise WriteError(
			WriteErrorKind.MISSING_REQUIRED_TARGET_FIELD,
			f'{target.value} charts need at least one timing point to place notes',
			expected='a timing point', found='none',
		)


def check_key_count(chart: Chart, target: Format, supported: Iterable[int]) -> None:
	supported = sorted(supported)
	if chart.key_count not in supported:
		raise WriteError(
			WriteErrorKind.UNREPRESENTABLE_KEY_COUNT,
			f'{target.value} cannot represent {chart.key_count} lanes',
			expected=', '.join(str(k) for k in supported), found=str(chart.key_count),
		)


def required_text(value: str, default: str, subject: str, report: Report) -> str:
	'''Substitute ``default`` for a blank required field, noting it'''
	value = single_line(value)
	if value:
		return value
	report.add(Stage.WRITE, subject, f"missing, written as '{default}'")
	return default


def report_dropped(report: Report, target: Format, fields: Iterable[Tuple[str, object]]) -> None:
	'''Note each non-empty field that ``target`` has nowhere to put'''
	for subject, value in fields:
		if value:
			report.add(Stage.WRITE, subject, f'not representable in {target.value}, dropped')


def report_foreign_extra(chart: Chart, target: Format, report: Report) -> None:
	'''Passthrough fields of other formats are dropped'''
	foreign = sorted(k for k in chart.metadata.extra if not k.startswith(target.value + '.'))
	if foreign:
		report.add(Stage.WRITE, 'metadata.extra',
			f"{len(foreign)} field(s) from other formats dropped: {', '.join(foreign)}")


def report_drift(report: Report, subject: str, drifts: Iterable[float], tolerance: float) -> Optional[float]:
	'''Note how many times moved by more than ``tolerance`` ms, and by how much at worst'''
	over = [d for d in drifts if d > tolerance]
	if not over:
		return None
	worst = max(over)
	report.add(Stage.WRITE, subject, f'{len(over)} time(s) moved by more than {tolerance} ms (at most {worst:.3f} ms)')
	return worst
