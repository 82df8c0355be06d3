'''Represents raw SM note grids.

:const:`Position` is the canonical type for representing the beat position of rows.
'''

from fractions import Fraction
from itertools import groupby
from math import gcd
from typing import Generic, Iterable, Iterator, List, Sequence, Tuple, TypeVar

import attr

from .errors import ParseError, ParseErrorKind, SourcePosition


Position = Fraction
# NOTE blocked : no docstring here because Sphinx sees the alias and eats whatever I put here

NoteType = TypeVar('NoteType', bound=Sequence)


BEATS_PER_MEASURE = 4 # regardless of time signature data elsewhere
_SM_TEXT_MEASURE_SEP = ','
EMPTY = '0'


@attr.s(auto_attribs=True, frozen=True, slots=True)
class NoteRow(Generic[NoteType]):
	position: Position
	notes: NoteType
	line: int = attr.ib(default=0, eq=False) # source line, 0 if not parsed


def _normalize_notes(notes_list: Iterable[NoteRow]) -> List[NoteRow]:
	return sorted(notes_list, key = lambda r: r.position)


@attr.s(auto_attribs=True, frozen=True)
class NoteData(Generic[NoteType]):
	'''Immutable collection of note rows with beat positions.

	This is intended as a container class and doesn't store nor handle
	semantic data about what notes actually mean.
	'''

	def __validate_notes(self, _, notes_list: List[NoteRow]):
		if len(note_row_lengths := set(len(r.notes) for r in notes_list)) > 1:
			raise ValueError(
				f'note rows have different lengths ({sorted(note_row_lengths)}) and are not homogenous'
			)

		for i in range(1, len(notes_list)):
			prev, curr = notes_list[i - 1], notes_list[i]
			if prev.position == curr.position:
				raise IndexError(f'rows {i-1} and {i} have identical position {prev.position}')

	# all the notes stored by this object, in [beat: notes] form
	_notes: List[NoteRow[NoteType]] = attr.ib(
		factory=list, converter=_normalize_notes, validator=__validate_notes
	)

	# access

	def __len__(self) -> int:
		'''Return the number of note rows'''
		return len(self._notes)

	def __iter__(self) -> Iterator[NoteRow[NoteType]]:
		return iter(self._notes)

	@property
	def width(self) -> int:
		return len(self._notes[0].notes) if self._notes else 0


def sm_to_notedata(data: str, first_line: int = 1) -> NoteData[str]:
	'''Read an SM note grid; rows that are entirely empty are not stored.

	``first_line`` is the line number of the start of ``data``, for error messages.
	'''
	measures: List[List[Tuple[int, str]]] = [[]]
	for il, line in enumerate(data.splitlines(), first_line):
		for token in line.replace(_SM_TEXT_MEASURE_SEP, f' {_SM_TEXT_MEASURE_SEP} ').split():
			if token == _SM_TEXT_MEASURE_SEP:
				measures.append([])
			else:
				measures[-1].append((il, token))

	width = None
	rows: List[NoteRow[str]] = []
	for measure_index, measure in enumerate(measures):
		for row_index, (il, row) in enumerate(measure):
			if width is None:
				width = len(row)
			elif len(row) != width:
				raise ParseError(
					ParseErrorKind.MALFORMED_NOTE_DATA, 'note rows have different widths',
					SourcePosition(il), expected=f'{width} columns', found=row,
				)
			if any(note != EMPTY for note in row):
				position = (Fraction(row_index, len(measure)) + measure_index) * BEATS_PER_MEASURE
				rows.append(NoteRow(position, row, il))
	return NoteData(rows)


# NOTE blocked py3.9 lcm
def _lcm(it):
	curr_lcm = 1
	for i in it:
		the_gcd = gcd(curr_lcm, i)
		curr_lcm //= the_gcd
		curr_lcm *= i
	return curr_lcm


def notedata_to_sm(data: NoteData[str]) -> str:
	'''Write an SM note grid using the fewest rows each measure allows.

	Positions must be non-negative.
	'''
	measures_text: List[str] = []
	EMPTY_ROW = EMPTY * data.width

	# group notes by measure
	for index, rs in groupby(data, key=lambda r: r.position // BEATS_PER_MEASURE):
		rows = list(rs)

		# fill in missing measures with empty data
		for _ in range(len(measures_text), index):
			measures_text.append('\n'.join([EMPTY_ROW] * BEATS_PER_MEASURE))

		# set up text array
		measure_rows_count = (_lcm(r.position.denominator for r in rows) * BEATS_PER_MEASURE)
		measure_rows = [EMPTY_ROW] * measure_rows_count

		for r in rows:
			dest_index = (r.position / BEATS_PER_MEASURE % 1) * measure_rows_count
			assert dest_index.denominator == 1, dest_index
			measure_rows[dest_index.numerator] = r.notes
		measures_text.append('\n'.join(measure_rows))

	return ('\n' + _SM_TEXT_MEASURE_SEP + '\n').join(measures_text)
