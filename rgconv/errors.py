'''Error taxonomy for every conversion stage

Each exception is a complete error value:
a kind, where it happened, and what was expected versus found.
'''

from enum import Enum, auto
from typing import List, Optional, Sequence, Union

import attr


IndexPath = Sequence[Union[int, str]]


def index_str(indices: IndexPath) -> str:
	'''Turns a path of indices into a JSON-like index string'''
	strings: List[str] = [f'.{i}' if isinstance(i, str) else f'[{i}]' for i in indices]
	return ''.join(strings).lstrip('.')


@attr.s(auto_attribs=True, frozen=True, slots=True)
class SourcePosition:
	'''Where in the input an error was found.

	Line and column are 1-based, as in text editors.
	'''
	line: Optional[int] = None
	column: Optional[int] = None
	key_path: Optional[IndexPath] = attr.ib(default=None, converter=attr.converters.optional(tuple))

	def __str__(self):
		parts = []
		if self.line is not None:
			parts.append(f'line {self.line}')
		if self.column is not None:
			parts.append(f'column {self.column}')
		if self.key_path is not None:
			parts.append(index_str(self.key_path) or '<root>')
		return ', '.join(parts) or 'unknown position'


class ParseErrorKind(Enum):
	MALFORMED_HEADER = auto()
	UNKNOWN_SECTION = auto()
	INVALID_NUMBER = auto()
	UNSUPPORTED_MODE = auto()
	MISSING_REQUIRED_FIELD = auto()
	TRUNCATED = auto()
	MALFORMED_NOTE_DATA = auto()
	MALFORMED_STRUCTURE = auto()
	INVALID_ENCODING = auto()


class ValidationErrorKind(Enum):
	EMPTY_TIMING_POINTS = auto()
	EMPTY_NOTES = auto()
	INVALID_KEY_COUNT = auto()
	NOTE_OUT_OF_LANE_RANGE = auto()
	CONFLICTING_TIMING_POINT = auto()
	NON_FINITE_VALUE = auto()
	INVALID_BPM = auto()
	INVALID_HOLD = auto()


class WriteErrorKind(Enum):
	MISSING_REQUIRED_TARGET_FIELD = auto()
	UNREPRESENTABLE_KEY_COUNT = auto()


class ChartError(Exception):
	'''Base class for every error raised by a conversion stage'''


def _detail(message: str, expected: Optional[str], found: Optional[str]) -> str:
	if expected is not None:
		message += f' (expected {expected}'
		if found is not None:
			message += f", found '{found}'"
		message += ')'
	return message


@attr.s(auto_attribs=True, auto_exc=True)
class ParseError(ChartError):
	'''Raw input could not be turned into a chart'''
	kind: ParseErrorKind
	message: str
	position: SourcePosition = SourcePosition()
	expected: Optional[str] = None
	found: Optional[str] = None

	def __str__(self):
		return f'{self.position}: ' + _detail(self.message, self.expected, self.found)


@attr.s(auto_attribs=True, auto_exc=True)
class ValidationError(ChartError):
	'''Chart is internally inconsistent.

	``position`` indexes into the chart, e.g. ``('notes', 12, 'lane')``.
	'''
	kind: ValidationErrorKind
	message: str
	position: SourcePosition = SourcePosition()
	expected: Optional[str] = None
	found: Optional[str] = None

	def __str__(self):
		return f'{self.position}: ' + _detail(self.message, self.expected, self.found)


@attr.s(auto_attribs=True, auto_exc=True)
class WriteError(ChartError):
	'''Chart cannot be expressed in the target format at all'''
	kind: WriteErrorKind
	message: str
	expected: Optional[str] = None
	found: Optional[str] = None

	def __str__(self):
		return _detail(self.message, self.expected, self.found)


class Stage(Enum):
	PARSE = 'parse'
	VALIDATE = 'validate'
	WRITE = 'write'


@attr.s(auto_attribs=True, auto_exc=True)
class ConversionError(ChartError):
	'''Wraps, unchanged, the error of whichever stage failed'''
	stage: Stage
	error: ChartError

	@property
	def kind(self):
		return self.error.kind # type: ignore # all stage errors have a kind

	def __str__(self):
		return f'{self.stage.value} failed: {self.error}'
