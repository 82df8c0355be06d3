'''Writer configuration

Options are an explicit, immutable value handed to writers;
there is no process-wide configuration.
'''

from typing import Any, Callable, Mapping, Union

import attr

from . import keypath as kp


def _positive(_, attribute, value):
	if value <= 0:
		raise ValueError(f"'{attribute.name}' must be positive, got {value}")


def _rows_per_measure(_, attribute, value):
	if value <= 0 or value % 4:
		raise ValueError(f"'{attribute.name}' must be a positive multiple of 4, got {value}")


@attr.s(auto_attribs=True, frozen=True)
class WriteOptions:
	# sm
	sm_decimal_places: int = attr.ib(default=3, validator=_positive)
	sm_rows_per_measure: int = attr.ib(default=192, validator=_rows_per_measure)

	# osu
	osu_format_version: int = attr.ib(default=14, validator=_positive)

	# substitutes for required fields the chart leaves empty
	default_title: str = 'Unknown Title'
	default_artist: str = 'Unknown Artist'
	default_creator: str = 'Unknown Creator'
	default_difficulty: str = 'Unknown Difficulty'

	# timing changes smaller than this are not worth a notice
	drift_tolerance_ms: float = attr.ib(default=1.0, validator=_positive)


_CHECKS: Mapping[str, Callable[[Any], Any]] = {
	'sm_decimal_places': kp.check_int,
	'sm_rows_per_measure': kp.check_int,
	'osu_format_version': kp.check_int,
	'default_title': kp.check_scalar_str,
	'default_artist': kp.check_scalar_str,
	'default_creator': kp.check_scalar_str,
	'default_difficulty': kp.check_scalar_str,
	'drift_tolerance_ms': kp.check_finite,
}


def options_from_mapping(data) -> WriteOptions:
	'''Build options from a structured YAML object, raising :exc:`~.keypath.KeyPathError`'''
	if data is None:
		return WriteOptions()
	mapping = kp.get(data, (), kp.check_mapping)
	kwargs = {}
	for key in mapping:
		if key not in _CHECKS:
			raise kp.KeyPathError(
				(key,), 'unknown option',
				expected=', '.join(_CHECKS), found=str(key),
			)
		kwargs[key] = kp.get(mapping, (key,), _CHECKS[key])
	try:
		return WriteOptions(**kwargs)
	except ValueError as e:
		raise kp.KeyPathError((), str(e)) from e


def load_options(text: Union[str, bytes]) -> WriteOptions:
	'''Load options from a YAML document'''
	from yaml import YAMLError, load
	try:
		from yaml import CSafeLoader as Loader
	except ImportError:
		from yaml import SafeLoader as Loader # type: ignore

	try:
		data = load(text, Loader = Loader)
	except YAMLError as e:
		raise kp.KeyPathError((), f'invalid YAML: {e}') from e
	return options_from_mapping(data)
