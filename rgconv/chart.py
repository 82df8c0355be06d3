'''Intermediate representation shared by every parser and writer

Times are chart-relative milliseconds, lanes are zero-indexed.
'''

from enum import Enum
from pathlib import PurePath
from typing import Mapping, Optional, Tuple, Union

import attr


class Format(Enum):
	'''Closed set of chart formats that can be read and written'''
	SM = 'sm'
	OSU = 'osu'
	QUA = 'qua'

	@classmethod
	def coerce(cls, what: Union['Format', str]) -> 'Format':
		'''Accept a member or its value (e.g. ``'osu'``, ``'.osu'``)'''
		if isinstance(what, cls):
			return what
		try:
			return cls(str(what).lower().lstrip('.'))
		except ValueError:
			supported = ', '.join(f.value for f in cls)
			raise ValueError(f"unsupported chart format '{what}' (supported: {supported})") from None

	@classmethod
	def from_path(cls, path: PurePath) -> 'Format':
		return cls.coerce(path.suffix)


class NoteKind(Enum):
	TAP = 'tap'
	HOLD = 'hold'


@attr.s(auto_attribs=True, frozen=True, slots=True)
class Note:
	'''One playable event'''
	time_ms: float
	lane: int
	kind: NoteKind = NoteKind.TAP
	end_time_ms: float = attr.ib()

	@end_time_ms.default
	def _end_time_ms_default(self):
		return self.time_ms

	@classmethod
	def tap(cls, time_ms: float, lane: int) -> 'Note':
		return cls(time_ms, lane, NoteKind.TAP, time_ms)

	@classmethod
	def hold(cls, time_ms: float, end_time_ms: float, lane: int) -> 'Note':
		return cls(time_ms, lane, NoteKind.HOLD, end_time_ms)

	@property
	def is_hold(self) -> bool:
		return self.kind is NoteKind.HOLD


@attr.s(auto_attribs=True, frozen=True, slots=True)
class TimingPoint:
	'''Tempo segment starting at ``time_ms``'''
	time_ms: float
	bpm: float
	meter: int = 4 # beats per measure

	@property
	def beat_length_ms(self) -> float:
		return 60000 / self.bpm


@attr.s(auto_attribs=True, frozen=True, slots=True)
class ScrollVelocity:
	'''Scroll speed change (OSU inherited points, QUA slider velocities)'''
	time_ms: float
	multiplier: float


@attr.s(auto_attribs=True, frozen=True)
class Metadata:
	'''Descriptive fields, none of which affect timing or notes'''
	title: str = ''
	title_alt: str = ''
	artist: str = ''
	artist_alt: str = ''
	subtitle: str = ''
	creator: str = ''
	source: str = ''
	genre: str = ''
	tags: Tuple[str, ...] = attr.ib(default=(), converter=tuple)

	audio_file: str = ''
	background_file: str = ''
	preview_time_ms: Optional[float] = None

	# provenance, for diagnostics only
	source_format: Optional[Format] = attr.ib(default=None, eq=False)

	# format-namespaced fields with no IR meaning, e.g. 'osu.Difficulty.HPDrainRate'
	extra: Mapping[str, str] = attr.ib(factory=dict, converter=dict)

	def extra_for(self, prefix: str) -> Mapping[str, str]:
		'''Passthrough fields under ``prefix.``, with the prefix removed'''
		prefix += '.'
		return {k[len(prefix):]: v for k, v in self.extra.items() if k.startswith(prefix)}


@attr.s(auto_attribs=True, frozen=True)
class Chart:
	'''One playable difficulty with its timing and metadata'''
	key_count: int
	timing_points: Tuple[TimingPoint, ...] = attr.ib(converter=tuple)
	notes: Tuple[Note, ...] = attr.ib(converter=tuple)
	metadata: Metadata = attr.Factory(Metadata)
	difficulty_label: str = ''
	scroll_velocities: Tuple[ScrollVelocity, ...] = attr.ib(default=(), converter=tuple)

	# information the parser could not carry into the IR
	diagnostics: Tuple[str, ...] = attr.ib(default=(), converter=tuple, eq=False)

	def counts(self) -> Tuple[int, int]:
		'''(taps, holds)'''
		holds = sum(1 for n in self.notes if n.is_hold)
		return len(self.notes) - holds, holds
