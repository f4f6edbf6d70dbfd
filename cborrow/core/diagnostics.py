# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
# author: Sławomir Liszniański; created: 2026-10-18
"""
Common diagnostic structure for the parser, lowering and borrow-check phases.

The borrow checker never formats or prints anything itself: it returns these
records and lets the driver (or any other caller) render them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .span import Span


class ViolationKind(Enum):
	"""Kinds of violations the borrow checker reports; values are the diagnostic codes."""

	USE_OF_MOVED_VALUE = "E_USE_AFTER_MOVE"
	USE_OF_INVALID_REFERENCE = "E_INVALID_REFERENCE"
	DANGLING_REFERENCE = "E_DANGLING_REFERENCE"
	DOUBLE_MUTABLE_BORROW_AT_CREATION = "E_BORROW_CONFLICT"  # strict mode only
	MOVE_OUT_OF_REFERENCE = "E_MOVE_FROM_REFERENCE"
	MALFORMED_INPUT = "E_MALFORMED_INPUT"


@dataclass
class Diagnostic:
	"""Represents a checker diagnostic (error/warning/etc.)."""

	message: str
	code: str | None = None
	# Phase label: "parser", "lower" or "borrowcheck". Attached by whoever
	# emits the diagnostic so JSON output is unambiguous.
	phase: str | None = None
	severity: str = "error"
	span: Span = field(default_factory=Span)  # Location of the faulting use (Span() denotes unknown).
	notes: list[str] = field(default_factory=list)
	# Borrow-check context: the place/reference involved and the statement that
	# moved or invalidated it (when known).
	place: Optional[str] = None
	cause_span: Optional[Span] = None
	function: Optional[str] = None

	def __post_init__(self) -> None:
		if self.span is None:  # type: ignore[unreachable]
			self.span = Span()

	@property
	def kind(self) -> Optional[ViolationKind]:
		"""The ViolationKind for this diagnostic's code, if it is a borrow-check code."""
		for kind in ViolationKind:
			if kind.value == self.code:
				return kind
		return None


__all__ = ["Diagnostic", "ViolationKind"]
