#!/usr/bin/env python3
# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
# author: Sławomir Liszniański; created: 2026-10-18
"""
cborrow command-line driver.

Parses each C source, lowers it to per-function CFGs and borrow-checks every
function definition (or only the ones named with `--function`). Diagnostics
are printed as `file:line:col: severity: message` on stderr, or as one JSON
payload on stdout with `--json`.

Exit codes: 0 when no errors were found, 1 when at least one error was
reported, 2 for usage errors (argparse).
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Set, Tuple

from cborrow.borrow_checker_pass import check_functions
from cborrow.config import CheckerConfig, DumpKind
from cborrow.core.diagnostics import Diagnostic
from cborrow.core.span import Span
from cborrow.frontend import load_source

logger = logging.getLogger(__name__)


def _diag_to_json(diag: Diagnostic, phase: str, source: Path) -> dict:
	"""Render a Diagnostic to a structured JSON-friendly dict."""
	line = getattr(diag.span, "line", None) if diag.span is not None else None
	column = getattr(diag.span, "column", None) if diag.span is not None else None
	file = None
	if diag.span is not None:
		file = getattr(diag.span, "file", None)
	if file is None:
		file = str(source)
	phase = getattr(diag, "phase", None) or phase
	notes = list(getattr(diag, "notes", []) or [])
	cause = diag.cause_span
	return {
		"phase": phase,
		"code": diag.code,
		"message": diag.message,
		"severity": diag.severity,
		"file": file,
		"line": line,
		"column": column,
		"function": diag.function,
		"place": diag.place,
		"cause_line": cause.line if cause is not None else None,
		"notes": notes,
	}


def _print_human(diag: Diagnostic, source: Path) -> None:
	file = diag.span.file or str(source)
	line = diag.span.line if diag.span.line is not None else "?"
	column = diag.span.column if diag.span.column is not None else "?"
	code = f" [{diag.code}]" if diag.code else ""
	print(f"{file}:{line}:{column}: {diag.severity}: {diag.message}{code}", file=sys.stderr)
	for note in diag.notes:
		print(f"{file}:{line}:{column}: note: {note}", file=sys.stderr)


def check_source(path: Path, config: CheckerConfig) -> Tuple[List[Diagnostic], Set[str]]:
	"""
	Run the whole pipeline over one file.

	Returns the diagnostics (front-end ones first, then borrow-check ones in
	source order) and the names of the function definitions the file holds.
	"""
	try:
		text = path.read_text(encoding="utf-8", errors="replace")
	except OSError as err:
		msg = f"cannot read '{path}': {err.strerror or err}"
		return [Diagnostic(message=msg, phase="driver", span=Span(file=str(path)))], set()
	program, diagnostics = load_source(text, path=path)
	if program is None:
		return diagnostics, set()
	defined = {cfg.name for cfg in program.functions}
	defined.update(d.function for d in program.errors if d.function)
	logger.debug("%s: %d function(s) lowered", path, len(program.functions))
	diagnostics.extend(
		check_functions(
			program.functions,
			type_table=program.type_table,
			signatures=program.signatures,
			config=config,
		)
	)
	return diagnostics, defined


def main(argv: list[str] | None = None) -> int:
	"""
	CLI: parse C source file(s) and borrow check their function definitions.
	Any error diagnostic makes the run fail.
	"""
	parser = argparse.ArgumentParser(
		prog="cborrow",
		description="Ownership and borrow checker for C sources",
	)
	parser.add_argument("source", type=Path, nargs="+", help="Path(s) to C source file(s)")
	parser.add_argument(
		"--function",
		action="append",
		default=[],
		metavar="NAME",
		help="Only analyse the named function definition (repeatable)",
	)
	parser.add_argument(
		"--strict",
		action="store_true",
		help="Also report conflicting mutable borrows where they are created",
	)
	parser.add_argument(
		"--json",
		action="store_true",
		help="Emit diagnostics as JSON on stdout (for tooling/tests)",
	)
	parser.add_argument(
		"--trace",
		action="store_true",
		help="Log ownership/reference events (moves, revivals, invalidations) to stderr",
	)
	parser.add_argument(
		"--dump",
		choices=[k.value for k in DumpKind if k is not DumpKind.NONE],
		help="Log the ownership set or the reference sets after every statement",
	)
	parser.add_argument(
		"--dump-globals",
		action="store_true",
		help="Include global variables in --dump output",
	)
	args = parser.parse_args(argv)

	if args.trace or args.dump:
		logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s", stream=sys.stderr)

	config = CheckerConfig.from_options(
		strict=args.strict,
		functions=args.function,
		trace=args.trace,
		dump=args.dump,
		dump_globals=args.dump_globals,
	)

	results: List[Tuple[Path, Diagnostic]] = []
	defined: Set[str] = set()
	for source_path in args.source:
		diags, names = check_source(source_path, config)
		defined |= names
		results.extend((source_path, d) for d in diags)

	for missing in sorted(config.functions - defined):
		results.append(
			(
				args.source[0],
				Diagnostic(message=f"no function definition named '{missing}'", phase="driver", function=missing),
			)
		)

	exit_code = 1 if any(d.severity == "error" for _, d in results) else 0
	if args.json:
		payload = {
			"exit_code": exit_code,
			"diagnostics": [_diag_to_json(d, "borrowcheck", path) for path, d in results],
		}
		print(json.dumps(payload))
	else:
		for path, d in results:
			_print_human(d, path)
	return exit_code


if __name__ == "__main__":
	sys.exit(main())
