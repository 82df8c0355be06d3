'''Beat <-> millisecond mapping for formats that place notes by beat'''

from bisect import bisect_left, bisect_right
from fractions import Fraction
from itertools import accumulate
from typing import Iterable, Tuple, Union

import attr


Beat = Union[Fraction, float, int]


@attr.s(auto_attribs=True, frozen=True, slots=True)
class BpmSegment:
	beat: float
	time_ms: float # ignoring stops
	bpm: float


@attr.s(auto_attribs=True, frozen=True, slots=True)
class Stop:
	beat: float
	duration_ms: float


def _check_bpm(beat: float, bpm: float) -> float:
	if bpm == 0:
		raise ValueError(f'BPM at beat {beat} is zero')
	return bpm


@attr.s(auto_attribs=True, frozen=True)
class TimingMap:
	'''Piecewise-linear mapping between beats and chart time.

	The first segment extends backwards to cover negative beats.
	A stop at beat ``b`` delays every beat strictly after ``b``.
	'''
	segments: Tuple[BpmSegment, ...]
	stops: Tuple[Stop, ...] = ()

	_beats: Tuple[float, ...] = attr.ib(
		init=False, repr=False, eq=False,
		default=attr.Factory(lambda self: tuple(s.beat for s in self.segments), takes_self=True)
	)
	_times: Tuple[float, ...] = attr.ib(
		init=False, repr=False, eq=False,
		default=attr.Factory(lambda self: tuple(s.time_ms for s in self.segments), takes_self=True)
	)
	_stop_beats: Tuple[float, ...] = attr.ib(
		init=False, repr=False, eq=False,
		default=attr.Factory(lambda self: tuple(s.beat for s in self.stops), takes_self=True)
	)
	_stop_totals: Tuple[float, ...] = attr.ib(
		init=False, repr=False, eq=False,
		default=attr.Factory(
			lambda self: tuple(accumulate((s.duration_ms for s in self.stops), initial=0.0)),
			takes_self=True
		)
	)

	@classmethod
	def from_beats(
		cls,
		origin_ms: float,
		bpms: Iterable[Tuple[Beat, float]],
		stops: Iterable[Tuple[Beat, float]] = (),
	) -> 'TimingMap':
		'''Build a map from ``beat=bpm`` pairs and ``beat=duration_ms`` stops.

		``origin_ms`` is the time of beat 0.
		Pairs are sorted by beat; ties keep their input order.
		'''
		changes = sorted(((float(b), _check_bpm(float(b), float(v))) for b, v in bpms), key=lambda c: c[0])
		if not changes:
			raise ValueError('at least one BPM change is required')

		first_beat, first_bpm = changes[0]
		tm = cls((BpmSegment(first_beat, origin_ms + first_beat * 60000 / first_bpm, first_bpm),))
		for beat, bpm in changes[1:]:
			tm = tm.with_change(beat, bpm)

		stop_list = sorted((Stop(float(b), float(d)) for b, d in stops), key=lambda s: s.beat)
		return attr.evolve(tm, stops=tuple(stop_list))

	def with_change(self, beat: Beat, bpm: float) -> 'TimingMap':
		'''Return a copy with a BPM change at ``beat``, which must not precede the last change'''
		beat = float(beat)
		prev = self.segments[-1]
		if beat < prev.beat:
			raise ValueError(f'BPM change at beat {beat} precedes the last change at beat {prev.beat}')
		segment = BpmSegment(beat, prev.time_ms + (beat - prev.beat) * 60000 / prev.bpm, _check_bpm(beat, bpm))
		return attr.evolve(self, segments=self.segments + (segment,))

	@property
	def origin_ms(self) -> float:
		'''time of beat 0'''
		return self.time_at(0)

	def bpm_at(self, beat: Beat) -> float:
		return self.segments[max(bisect_right(self._beats, float(beat)) - 1, 0)].bpm

	def time_at(self, beat: Beat) -> float:
		beat = float(beat)
		seg = self.segments[max(bisect_right(self._beats, beat) - 1, 0)]
		delay = self._stop_totals[bisect_left(self._stop_beats, beat)]
		return seg.time_ms + (beat - seg.beat) * 60000 / seg.bpm + delay

	def beat_at(self, time_ms: float) -> float:
		'''Inverse of :meth:`time_at` for maps with positive BPMs and no stops'''
		seg = self.segments[max(bisect_right(self._times, time_ms) - 1, 0)]
		return seg.beat + (time_ms - seg.time_ms) * seg.bpm / 60000
