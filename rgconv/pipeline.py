'''parse -> validate -> write, with one report per conversion'''

import logging
from time import perf_counter_ns
from typing import List, Optional, Union

import attr

from . import formats
from .chart import Chart, Format
from .errors import ConversionError, ParseError, Stage, ValidationError, WriteError
from .options import WriteOptions
from .report import Report
from .validate import validate


_logger = logging.getLogger(__name__)


FormatLike = Union[Format, str]


@attr.s(auto_attribs=True, frozen=True)
class WriteResult:
	data: bytes
	report: Report


@attr.s(auto_attribs=True, frozen=True)
class ConversionResult:
	data: bytes
	report: Report
	chart: Chart # as validated and handed to the writer


def write_validated(chart: Chart, target: FormatLike, options: Optional[WriteOptions] = None) -> WriteResult:
	'''Validate, then write; stage errors are raised unwrapped'''
	valid, warnings = validate(chart)
	data, notices = formats.write(valid, Format.coerce(target), options)
	report = Report()
	report.extend(warnings)
	report.extend(notices)
	return WriteResult(data, report)


def _convert_chart(chart: Chart, target: Format, options: Optional[WriteOptions]) -> ConversionResult:
	report = Report()
	subject = chart.metadata.source_format.value if chart.metadata.source_format else 'source'
	for diagnostic in chart.diagnostics:
		report.add(Stage.PARSE, subject, diagnostic)

	try:
		valid, warnings = validate(chart)
	except ValidationError as e:
		raise ConversionError(Stage.VALIDATE, e) from e
	report.extend(warnings)

	try:
		data, notices = formats.write(valid, target, options)
	except WriteError as e:
		raise ConversionError(Stage.WRITE, e) from e
	report.extend(notices)

	return ConversionResult(data, report, valid)


def convert(
	data: bytes,
	source: FormatLike,
	target: FormatLike,
	difficulty: Optional[str] = None,
	options: Optional[WriteOptions] = None,
) -> ConversionResult:
	'''Convert one chart between formats.

	For sources holding several charts, ``difficulty`` selects one by label;
	the first chart is used otherwise.

	Raises:
		ConversionError: wrapping the error of the stage that failed
		ValueError: ``source`` or ``target`` is not a known format
	'''
	source, target = Format.coerce(source), Format.coerce(target)
	start_time = perf_counter_ns()
	try:
		chart = formats.parse_one(data, source, difficulty)
	except ParseError as e:
		raise ConversionError(Stage.PARSE, e) from e

	result = _convert_chart(chart, target, options)
	_logger.debug(
		f'converted {source.value} -> {target.value}: {len(result.chart.notes)} notes, '
		f'{len(result.report)} notice(s) in {(perf_counter_ns() - start_time) / 1e6:.3f} ms'
	)
	return result


def convert_all(
	data: bytes,
	source: FormatLike,
	target: FormatLike,
	options: Optional[WriteOptions] = None,
) -> List[ConversionResult]:
	'''Convert every chart of the source, in file order

	Raises:
		ConversionError: wrapping the first error of any chart
		ValueError: ``source`` or ``target`` is not a known format
	'''
	source, target = Format.coerce(source), Format.coerce(target)
	try:
		charts = formats.parse_all(data, source)
	except ParseError as e:
		raise ConversionError(Stage.PARSE, e) from e
	return [_convert_chart(chart, target, options) for chart in charts]
