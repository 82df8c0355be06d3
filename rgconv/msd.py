'''Tokenizer and serializer for MSD, the ``#TAG:value;`` grammar under SM files'''

from typing import ClassVar, Iterable, Iterator, List

import attr

from .errors import ParseError, ParseErrorKind, SourcePosition


def _get_validate_part(component: str):
	def __validate_part(self, attribute, val: str):
		if component in val:
			raise ValueError(f"'{attribute.name}' contains invalid substring '{component}' in '{val}'")
	return __validate_part


@attr.s(auto_attribs=True, frozen=True, slots=True)
class MSDItem:
	'''Immutable POD for an individual MSD item, representing a tag and a value.

	The meaning of MSD is lost to the sands of time.

	NOTE 'key' is more pythonic, but 'tag' is the canonical StepMania name per the wiki.
	'''
	# syntactical elements
	BEGIN: ClassVar[str] = '#'
	END_TAG: ClassVar[str] = ':'
	END_VALUE: ClassVar[str] = ';'
	COMMENT: ClassVar[str] = '//'

	tag: str = attr.ib(validator=_get_validate_part(END_TAG))
	value: str = attr.ib(validator=_get_validate_part(END_VALUE))

	# where the value starts, for error messages
	line: int = attr.ib(default=1, eq=False)

	def __str__(self):
		return f'{self.BEGIN}{self.tag}{self.END_TAG}{self.value}{self.END_VALUE}'


def _strip_comment(line: str) -> str:
	comment_trim = line.find(MSDItem.COMMENT)
	if comment_trim != -1:
		return line[:comment_trim]
	return line


def text_to_msd(text: str) -> Iterator[MSDItem]:
	'''Generate structured Python MSD objects from string MSD

	NOTE This parser is stricter than SM `/src/MsdFile.cpp`
	* Text outside of items is an error rather than being skipped.
	* An item left open at the end of the text is an error.
	* Backslash escapes are not supported.
	Behavior seems to vary across products:
		AV ignores the backslash
		SM 3.9 doesn't support it at all
		SM5 parses it to... something.

	Like SM, a line starting with ``#`` inside an open value ends that value,
	which tolerates a forgotten ``;``.
	'''
	tag_name = ''
	tag_line = 0
	content: List[str] = []
	in_item = False

	for il, raw_line in enumerate(text.splitlines(keepends=True), 1):
		# trim comments first, just as in SM
		line = _strip_comment(raw_line)
		col = 0

		if in_item and line.lstrip().startswith(MSDItem.BEGIN):
			yield MSDItem(tag_name, ''.join(content), tag_line)
			in_item = False

		while col < len(line):
			if not in_item:
				rest = line[col:]
				stripped = rest.lstrip()
				if not stripped:
					break
				col += len(rest) - len(stripped)
				if not stripped.startswith(MSDItem.BEGIN):
					raise ParseError(
						ParseErrorKind.MALFORMED_HEADER, 'text outside of a tag',
						SourcePosition(il, col + 1),
						expected=f"'{MSDItem.BEGIN}'", found=stripped.rstrip()[:20],
					)
				end_tag = line.find(MSDItem.END_TAG, col)
				if end_tag == -1:
					raise ParseError(
						ParseErrorKind.MALFORMED_HEADER, 'tag name is not terminated',
						SourcePosition(il, col + 1),
						expected=f"'{MSDItem.END_TAG}'", found=line[col:].rstrip(),
					)
				tag_name = line[col + len(MSDItem.BEGIN):end_tag].strip()
				tag_line = il
				content = []
				in_item = True
				col = end_tag + len(MSDItem.END_TAG)

			end_value = line.find(MSDItem.END_VALUE, col)
			if end_value == -1:
				content.append(line[col:])
				break
			content.append(line[col:end_value])
			yield MSDItem(tag_name, ''.join(content), tag_line)
			in_item = False
			col = end_value + len(MSDItem.END_VALUE)

	if in_item:
		raise ParseError(
			ParseErrorKind.TRUNCATED, f"unexpected end of text while reading '#{tag_name}'",
			SourcePosition(tag_line),
			expected=f"'{MSDItem.END_VALUE}'", found='end of text',
		)


def msd_to_lines(items: Iterable[MSDItem]) -> Iterable[str]:
	for item in items:
		yield str(item) + '\n'


def msd_to_text(items: Iterable[MSDItem]) -> str: # convenience method
	return ''.join(msd_to_lines(items))
