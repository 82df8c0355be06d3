'''Informational conversion report

Nothing in a report ever fails a conversion.
'''

import logging
from typing import Iterable, Iterator, List

import attr

from .errors import Stage


@attr.s(auto_attribs=True, frozen=True, slots=True)
class Notice:
	'''One piece of information that was dropped, defaulted or fixed up'''
	stage: Stage
	subject: str # the field or object concerned, e.g. 'metadata.title'
	message: str

	def __str__(self):
		return f'[{self.stage.value}] {self.subject}: {self.message}'


@attr.s(auto_attribs=True)
class Report:
	'''Ordered collection of notices, local to one conversion call'''
	notices: List[Notice] = attr.Factory(list)

	def add(self, stage: Stage, subject: str, message: str) -> Notice:
		notice = Notice(stage, subject, message)
		logging.getLogger(f'{__name__}.{stage.value}').debug(str(notice))
		self.notices.append(notice)
		return notice

	def extend(self, notices: Iterable[Notice]) -> None:
		self.notices.extend(notices)

	def by_stage(self, stage: Stage) -> List[Notice]:
		return [n for n in self.notices if n.stage is stage]

	def subjects(self) -> List[str]:
		return [n.subject for n in self.notices]

	def __iter__(self) -> Iterator[Notice]:
		return iter(self.notices)

	def __len__(self) -> int:
		return len(self.notices)

	def __str__(self):
		return '\n'.join(str(n) for n in self.notices)
