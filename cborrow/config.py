# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
# author: Sławomir Liszniański; created: 2026-10-18
"""
Analysis options shared by the driver and the borrow-check pass.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Iterable, Optional


class AnalysisMode(Enum):
	"""
	How the creation of a conflicting reference is treated.

	SILENT: the older references are invalidated and only a later use of one
	of them is reported.
	STRICT: additionally report the conflict where the new reference is made.
	"""

	SILENT = "silent"
	STRICT = "strict"


class DumpKind(Enum):
	"""Which state set, if any, is logged after every statement."""

	NONE = "none"
	OWNERSHIP = "ownership"
	REFERENCES = "references"


@dataclass(frozen=True)
class CheckerConfig:
	"""Options for one analysis run (immutable; build a new one to change it)."""

	mode: AnalysisMode = AnalysisMode.SILENT
	# Function definitions to analyse; empty means all of them.
	functions: FrozenSet[str] = frozenset()
	# Emit ownership/reference events through the `cborrow` loggers at DEBUG.
	trace: bool = False
	dump: DumpKind = DumpKind.NONE
	# Include the global frame in dumps.
	dump_globals: bool = False

	@classmethod
	def from_options(
		cls,
		*,
		strict: bool = False,
		functions: Optional[Iterable[str]] = None,
		trace: bool = False,
		dump: Optional[str] = None,
		dump_globals: bool = False,
	) -> "CheckerConfig":
		return cls(
			mode=AnalysisMode.STRICT if strict else AnalysisMode.SILENT,
			functions=frozenset(functions or ()),
			trace=trace,
			dump=DumpKind(dump) if dump else DumpKind.NONE,
			dump_globals=dump_globals,
		)

	def wants(self, function_name: str) -> bool:
		"""True when `function_name` should be analysed under this config."""
		return not self.functions or function_name in self.functions


__all__ = ["AnalysisMode", "DumpKind", "CheckerConfig"]
