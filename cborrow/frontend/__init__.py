# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
# author: Sławomir Liszniański; created: 2026-10-18
"""
C front-end: parse a source file and lower it for the borrow checker.

`load_source` is the entry used by the driver; it never raises for problems
in the input and reports them as parser/lower diagnostics instead.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Tuple

from lark.exceptions import UnexpectedInput

from cborrow.core.diagnostics import Diagnostic, ViolationKind
from cborrow.core.span import Span

from . import parser as _parser
from .lower import LoweredProgram, LoweringError, lower_translation_unit


def _span_in_file(path: Optional[Path], loc: object | None) -> Span:
	file = str(path) if path is not None else None
	return Span.from_loc(loc).with_file(file)


def load_source(source: str, *, path: Optional[Path] = None) -> Tuple[Optional[LoweredProgram], List[Diagnostic]]:
	"""
	Parse and lower one translation unit.

	Returns the lowered program (None when the file could not be parsed or
	lowered at all) and any diagnostics. Lowering problems confined to one
	function body are reported while the other functions are still returned.
	"""
	filename = str(path) if path is not None else None
	try:
		unit = _parser.parse_program(source, filename=filename)
	except UnexpectedInput as err:
		span = Span(
			file=filename,
			line=getattr(err, "line", None),
			column=getattr(err, "column", None),
		)
		message = str(err).strip().splitlines()[0] if str(err).strip() else "syntax error"
		return None, [Diagnostic(message=message, code=ViolationKind.MALFORMED_INPUT.value, phase="parser", span=span)]
	except _parser.ParseError as err:
		return None, [
			Diagnostic(message=str(err), code=ViolationKind.MALFORMED_INPUT.value, phase="parser", span=_span_in_file(path, err.loc))
		]
	try:
		program = lower_translation_unit(unit)
	except LoweringError as err:
		return None, [
			Diagnostic(message=str(err), code=ViolationKind.MALFORMED_INPUT.value, phase="lower", span=_span_in_file(path, err.loc))
		]
	return program, list(program.errors)


__all__ = ["load_source", "LoweredProgram", "LoweringError", "lower_translation_unit"]
