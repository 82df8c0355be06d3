'''One parser and one writer per :class:`~.Format`

Adding a format means adding a member to :class:`~.Format`
and an entry to the handler table here.
'''

from typing import Callable, List, Mapping, Optional, Tuple

import attr

from ..chart import Chart, Format
from ..errors import ParseError, ParseErrorKind, SourcePosition
from ..options import WriteOptions
from ..report import Report
from . import osu, qua, sm


Parser = Callable[[bytes], List[Chart]]
Writer = Callable[[Chart, WriteOptions], Tuple[bytes, Report]]


@attr.s(auto_attribs=True, frozen=True, slots=True)
class Handler:
	parse_all: Parser
	write: Writer


def _single(parse: Callable[[bytes], Chart]) -> Parser:
	return lambda data: [parse(data)]


HANDLERS: Mapping[Format, Handler] = {
	Format.SM: Handler(sm.parse, sm.write),
	Format.OSU: Handler(_single(osu.parse), osu.write),
	Format.QUA: Handler(_single(qua.parse), qua.write),
}


def parse_all(data: bytes, fmt: Format) -> List[Chart]:
	'''Every chart in the input, in file order'''
	return HANDLERS[fmt].parse_all(data)


def select(charts: List[Chart], difficulty: Optional[str] = None) -> Chart:
	'''The chart labelled ``difficulty`` (ignoring case), or the first one'''
	if difficulty is None:
		return charts[0]
	for chart in charts:
		if chart.difficulty_label.lower() == difficulty.lower():
			return chart
	raise ParseError(
		ParseErrorKind.MISSING_REQUIRED_FIELD, f"no chart labelled '{difficulty}'", SourcePosition(),
		expected=', '.join(repr(c.difficulty_label) for c in charts), found=difficulty,
	)


def parse_one(data: bytes, fmt: Format, difficulty: Optional[str] = None) -> Chart:
	return select(parse_all(data, fmt), difficulty)


def write(chart: Chart, fmt: Format, options: Optional[WriteOptions] = None) -> Tuple[bytes, Report]:
	'''Serialize an already validated chart'''
	return HANDLERS[fmt].write(chart, options or WriteOptions())
