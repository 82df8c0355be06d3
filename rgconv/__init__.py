'''Rhythm game chart conversion between StepMania, osu!mania and Quaver

Every function here is pure: bytes and charts in, bytes and charts out.
Failures are raised as the typed errors of :mod:`.errors`.
'''

from typing import List, Optional

from . import formats
from .chart import Chart, Format, Metadata, Note, NoteKind, ScrollVelocity, TimingPoint
from .errors import (
	ConversionError, ParseError, ParseErrorKind, SourcePosition, Stage,
	ValidationError, ValidationErrorKind, WriteError, WriteErrorKind,
)
from .options import WriteOptions, load_options
from .pipeline import ConversionResult, WriteResult, convert, convert_all, write_validated
from .report import Notice, Report
from .validate import validate


def parse_from_sm(data: bytes, difficulty: Optional[str] = None) -> Chart:
	'''The chart labelled ``difficulty``, or the first chart of the simfile'''
	return formats.parse_one(data, Format.SM, difficulty)


def parse_all_from_sm(data: bytes) -> List[Chart]:
	return formats.parse_all(data, Format.SM)


def parse_from_osu(data: bytes) -> Chart:
	return formats.parse_one(data, Format.OSU)


def parse_from_qua(data: bytes) -> Chart:
	return formats.parse_one(data, Format.QUA)


def write_to_sm(chart: Chart, options: Optional[WriteOptions] = None) -> WriteResult:
	return write_validated(chart, Format.SM, options)


def write_to_osu(chart: Chart, options: Optional[WriteOptions] = None) -> WriteResult:
	return write_validated(chart, Format.OSU, options)


def write_to_qua(chart: Chart, options: Optional[WriteOptions] = None) -> WriteResult:
	return write_validated(chart, Format.QUA, options)


__all__ = [
	'Chart', 'Format', 'Metadata', 'Note', 'NoteKind', 'ScrollVelocity', 'TimingPoint',
	'ConversionError', 'ParseError', 'ParseErrorKind', 'SourcePosition', 'Stage',
	'ValidationError', 'ValidationErrorKind', 'WriteError', 'WriteErrorKind',
	'WriteOptions', 'load_options',
	'ConversionResult', 'WriteResult', 'convert', 'convert_all',
	'Notice', 'Report', 'validate',
	'parse_from_sm', 'parse_all_from_sm', 'parse_from_osu', 'parse_from_qua',
	'write_to_sm', 'write_to_osu', 'write_to_qua',
]
