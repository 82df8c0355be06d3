"""Command-line runner for rgconv"""

import argparse
import logging
import re
from collections import Counter
from pathlib import Path
from time import perf_counter_ns
from typing import List, Optional

from .chart import Chart, Format
from .errors import ConversionError
from .options import WriteOptions, load_options
from .pipeline import ConversionResult, convert, convert_all


def args_path_sanity_check(args, outputs: List[Path]):
	"""Refuse to read from a missing file or write over the input or another output"""
	if not args.input.is_file():
		raise FileNotFoundError(f"Input file '{args.input}' doesn't exist")
	input_resolved = args.input.resolve()
	for output in outputs:
		if output.resolve() == input_resolved:
			raise ValueError(f"Input and output both resolve to '{input_resolved}', which would overwrite it")
	if len(set(o.resolve() for o in outputs)) < len(outputs):
		raise ValueError('Several charts would be written to the same output file')


def _formats(args):
	source = Format.coerce(args.source) if args.source else Format.from_path(args.input)
	if args.target:
		target = Format.coerce(args.target)
	elif args.output and not args.all:
		target = Format.from_path(args.output)
	else:
		raise ValueError('no target format: pass --to, or an output file with a known suffix')
	return source, target


def _safe_name(label: str) -> str:
	return re.sub(r'[\\/:*?"<>|]', '_', label).strip() or 'chart'


def _output_paths(args, target: Format, charts: List[Chart]) -> List[Path]:
	suffix = '.' + target.value
	if not args.all:
		return [args.output or args.input.with_suffix(suffix)]

	directory = args.output or args.input.parent
	labels = [chart.difficulty_label or str(i + 1) for i, chart in enumerate(charts)]
	counts = Counter(labels)
	for i, chart in enumerate(charts):
		# charts sharing a label (single and double, say) would write over each other
		if counts[labels[i]] > 1:
			steps_type = chart.metadata.extra.get('sm.STEPSTYPE')
			labels[i] += f' {steps_type}' if steps_type else f' {i + 1}'
	for i, label in enumerate(labels):
		if labels.count(label) > 1:
			labels[i] = f'{label} {i + 1}'
	return [directory / f'{args.input.stem} [{_safe_name(label)}]{suffix}' for label in labels]


def _write(path: Path, data: bytes):
	# swap the result over any old file only once it is complete
	partial = path.parent / (path.name + '.partial')
	with open(partial, 'wb') as f:
		f.write(data)
	partial.replace(path)


def _report(path: Path, result: ConversionResult):
	for notice in result.report:
		logging.warning(f"'{path}': {notice}")
	taps, holds = result.chart.counts()
	logging.info(f"wrote '{path}' ({taps} taps, {holds} holds, {len(result.report)} notices)")


def run(args) -> int:
	"""Convert one input file; returns the process exit status"""
	time_original = perf_counter_ns()

	source, target = _formats(args)
	options = WriteOptions()
	if args.options:
		options = load_options(args.options.read_bytes())
		logging.debug(f'options: {options}')

	args_path_sanity_check(args, [args.output] if args.output and not args.all else [])
	data = args.input.read_bytes()

	try:
		if args.all:
			results = convert_all(data, source, target, options)
		else:
			results = [convert(data, source, target, args.difficulty, options)]
	except ConversionError as e:
		logging.error(f"'{args.input}': {e}")
		return 1

	outputs = _output_paths(args, target, [r.chart for r in results])
	args_path_sanity_check(args, outputs)
	if args.all and args.output:
		args.output.mkdir(parents=True, exist_ok=True)

	for path, result in zip(outputs, results):
		_write(path, result.data)
		_report(path, result)

	time_elapsed = perf_counter_ns() - time_original
	logging.info(f"converted {len(results)} chart(s) ({time_elapsed / 1000000 :.0f} ms)")
	return 0


def main(argv: Optional[List[str]] = None) -> int:
	"""Initial command line entry point to set up logging and argument parsing"""
	formats = [f.value for f in Format]
	parser = argparse.ArgumentParser(description='Convert rhythm game charts between sm, osu and qua.')
	parser.add_argument('input', type=Path)
	parser.add_argument('output', type=Path, nargs='?',
		help='output file, or directory with --all (default: beside the input)')
	parser.add_argument('-v', '--verbose', action='count', default=0,
		help='output more detail (stacks)')
	parser.add_argument('-q', '--quiet', action='count', default=0,
		help='output less detail (stacks)')
	parser.add_argument('-f', '--from', dest='source', choices=formats,
		help='input format (default: from the input suffix)')
	parser.add_argument('-t', '--to', dest='target', choices=formats,
		help='output format (default: from the output suffix)')
	parser.add_argument('-d', '--difficulty', type=str,
		help='label of the chart to convert when the input has several (default: the first)')
	parser.add_argument('-a', '--all', action='store_true',
		help='convert every chart of the input, one output file each')
	parser.add_argument('--options', type=Path,
		help='YAML file of writer options')
	args = parser.parse_args(argv)

	# set up logging
	log_levels = [logging.CRITICAL, logging.ERROR, logging.WARNING, logging.INFO, logging.DEBUG]
	requested_log_level = 2 + args.verbose - args.quiet
	requested_log_level = max(0, min(requested_log_level, len(log_levels) - 1))
	logging.basicConfig(level=log_levels[requested_log_level])
	logging.debug(args)

	try:
		return run(args)
	except (ValueError, OSError) as e:
		logging.error(str(e))
		return 2
