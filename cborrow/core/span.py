# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
# author: Sławomir Liszniański; created: 2026-10-18
"""Source positions attached to IR statements and diagnostics."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Optional


@dataclass(frozen=True)
class Span:
	"""File/line/column of a statement or expression; hand-built CFGs may leave it empty."""

	file: Optional[str] = None
	line: Optional[int] = None
	column: Optional[int] = None

	@classmethod
	def from_loc(cls, loc: Any) -> "Span":
		"""Accept a Span, anything with line/column attributes (lark errors, AST locs), or None."""
		if loc is None:
			return cls()
		if isinstance(loc, cls):
			return loc
		return cls(
			file=getattr(loc, "file", None),
			line=getattr(loc, "line", None),
			column=getattr(loc, "column", None),
		)

	def with_file(self, file: Optional[str]) -> "Span":
		return replace(self, file=file)


__all__ = ["Span"]
