'''Key-path access into parsed YAML trees

Every failure names the full key path from the document root,
so that callers can report exactly which entry is wrong.
'''

import math
from typing import Any, Callable, Optional, Sequence, TypeVar

from .errors import IndexPath, index_str


_T = TypeVar('_T')


class KeyPathError(ValueError):
	'''A key is missing, or the value at a key has the wrong type.

	``missing`` distinguishes the two.
	'''
	def __init__(self, path: IndexPath, message: str, *,
		missing: bool = False, expected: Optional[str] = None, found: Optional[str] = None
	):
		super().__init__(f'{index_str(path) or "<root>"}: {message}')
		self.path = tuple(path)
		self.message = message
		self.missing = missing
		self.expected = expected
		self.found = found


class CheckError(TypeError):
	'''Raised by check functions; ``expected`` describes the accepted values'''
	def __init__(self, expected: str, found: Any):
		super().__init__(f'expected {expected}, got {type(found).__name__} instead: {found}')
		self.expected = expected
		self.found = found


def get_u(what, indices: IndexPath) -> Any:
	'''verifies that a key path exists, and returns what is there

	Args:
		what: the structured YAML object
		indices: the index path through which to descend into the object
	'''
	for ii, i in enumerate(indices):
		try:
			what = what[i]
		except (LookupError, TypeError):
			if isinstance(what, (Sequence, dict)) and not isinstance(what, str):
				raise KeyPathError(indices[:ii + 1], 'key missing', missing=True) from None
			raise KeyPathError(
				indices[:ii], f'{type(what).__name__} not indexable',
				expected='a mapping or sequence', found=str(what),
			) from None
	return what


def get(what, indices: IndexPath, check: Callable[[Any], _T]) -> _T:
	'''Type-safe version of :meth:`get_u` with check function'''
	return _checked(indices, get_u(what, indices), check)


def get_optional(what, indices: IndexPath, check: Callable[[Any], _T], default: _T) -> _T:
	'''Like :meth:`get`, but a missing final key (or an explicit null) gives ``default``'''
	try:
		value = get_u(what, indices)
	except KeyPathError as e:
		if e.missing and len(e.path) == len(indices):
			return default
		raise
	if value is None:
		return default
	return _checked(indices, value, check)


def _checked(indices: IndexPath, value, check: Callable[[Any], _T]) -> _T:
	try:
		return check(value)
	except CheckError as e:
		raise KeyPathError(indices, str(e), expected=e.expected, found=str(e.found)) from e


def get_sequence(what, indices: IndexPath) -> Sequence:
	'''A list at ``indices``; missing or null gives an empty list'''
	return get_optional(what, indices, check_sequence, [])


# simple check methods

def check_int(what) -> int:
	if isinstance(what, bool) or not isinstance(what, int):
		raise CheckError('an integer', what)
	return what


def check_number(what) -> float:
	'''int or float, as YAML gives them; non-finite values are let through'''
	if isinstance(what, bool) or not isinstance(what, (int, float)):
		raise CheckError('a number', what)
	return float(what)


def check_finite(what) -> float:
	value = check_number(what)
	if not math.isfinite(value):
		raise CheckError('a finite number', what)
	return value


def check_bool(what) -> bool:
	if not isinstance(what, bool):
		raise CheckError('true or false', what)
	return what


def check_scalar_str(what) -> str:
	'''Any scalar, as text; YAML turns titles like ``1999`` into numbers'''
	if isinstance(what, bool):
		return 'true' if what else 'false'
	if isinstance(what, (str, int, float)):
		return str(what)
	raise CheckError('a scalar', what)


def check_sequence(what) -> Sequence:
	if not isinstance(what, Sequence) or isinstance(what, str):
		raise CheckError('a sequence', what)
	return what


def check_mapping(what) -> dict:
	if not isinstance(what, dict):
		raise CheckError('a mapping', what)
	return what
