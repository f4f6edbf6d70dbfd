# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
# author: Sławomir Liszniański; created: 2026-10-18
"""
Flow state of the borrow checker at one program point.

Three parts:
  * ownership of owner-typed places (`Live`/`Moved`, plus where each move
    happened so diagnostics can point at it),
  * reference states keyed by the reference's own place (a variable or a
    pointer-typed field),
  * the stack of open scope frames and the roots each frame introduced.

Only the borrow-check pass mutates a FlowState; joins go through
`merge_flow_states`, which never mutates its inputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum, auto
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from cborrow.borrow_checker import (
	OwnershipState,
	Place,
	PlaceBase,
	merge_ownership_state,
)
from cborrow.core.span import Span


class RefKind(Enum):
	MUTABLE = auto()
	CONST = auto()


class Validity(Enum):
	VALID = auto()
	INVALID = auto()


class InvalidationReason(Enum):
	"""Why a reference stopped being valid (drives the diagnostic kind and note)."""

	CONFLICTING_BORROW = auto()
	OVERWRITE = auto()
	MOVE = auto()
	COPIED = auto()  # a mutable reference was duplicated into another reference
	SCOPE_EXIT = auto()


@dataclass(frozen=True)
class Invalidation:
	reason: InvalidationReason
	span: Span = field(default_factory=Span, compare=False)
	place: Optional[Place] = None


@dataclass(frozen=True)
class ReferenceState:
	"""
	State of one reference.

	`targets` is a set because joins may merge references that point at
	different places; `lifetime` is the depth of the shortest-lived frame among
	them (0 = globals / unknown pointees).
	"""

	validity: Validity
	kind: RefKind
	targets: FrozenSet[Place]
	lifetime: int = 0
	cause: Optional[Invalidation] = None

	@property
	def is_valid(self) -> bool:
		return self.validity is Validity.VALID

	@property
	def target(self) -> Optional[Place]:
		"""The canonical (first in stable order) target."""
		if not self.targets:
			return None
		return sorted(self.targets, key=lambda p: p.sort_key())[0]

	def invalidated(self, cause: Invalidation) -> "ReferenceState":
		return replace(self, validity=Validity.INVALID, cause=cause)


def merge_reference_state(a: ReferenceState, b: ReferenceState) -> ReferenceState:
	"""
	Meet for references: INVALID dominates, targets are unioned and the
	shortest lifetime is kept. A reference that is mutable on either side is
	treated as mutable.
	"""
	if a == b:
		return a
	validity = Validity.INVALID if Validity.INVALID in (a.validity, b.validity) else Validity.VALID
	kind = RefKind.MUTABLE if RefKind.MUTABLE in (a.kind, b.kind) else RefKind.CONST
	cause = None
	if validity is Validity.INVALID:
		cause = a.cause if a.validity is Validity.INVALID else b.cause
	return ReferenceState(
		validity=validity,
		kind=kind,
		targets=a.targets | b.targets,
		lifetime=max(a.lifetime, b.lifetime),
		cause=cause,
	)


@dataclass(frozen=True)
class ScopeFrame:
	"""An open lexical region and the roots declared in it."""

	frame_id: int
	depth: int
	bases: FrozenSet[PlaceBase] = frozenset()


@dataclass
class FlowState:
	"""Dataflow state at a CFG point: ownership + reference states + scope frames."""

	places: Dict[Place, OwnershipState] = field(default_factory=dict)
	moved_at: Dict[Place, Span] = field(default_factory=dict)
	refs: Dict[Place, ReferenceState] = field(default_factory=dict)
	frames: Tuple[ScopeFrame, ...] = ()

	# -- ownership -----------------------------------------------------------

	def get(self, place: Place) -> OwnershipState:
		"""Recorded state of exactly `place` (untracked places are Live)."""
		return self.places.get(place, OwnershipState.LIVE)

	def set(self, place: Place, value: OwnershipState, *, at: Optional[Span] = None) -> None:
		self.places[place] = value
		if value is OwnershipState.MOVED:
			self.moved_at[place] = at or Span()
		else:
			self.moved_at.pop(place, None)

	def moved_ancestor(self, place: Place) -> Optional[Place]:
		"""
		The nearest of `place` and its ancestors that is Moved, or None.

		A field of a moved aggregate is just as unusable as the aggregate.
		"""
		if self.get(place) is OwnershipState.MOVED:
			return place
		for anc in place.ancestors():
			if self.get(anc) is OwnershipState.MOVED:
				return anc
		return None

	# -- references ----------------------------------------------------------

	def get_ref(self, place: Place) -> Optional[ReferenceState]:
		return self.refs.get(place)

	def set_ref(self, place: Place, value: ReferenceState) -> None:
		self.refs[place] = value

	def drop_ref(self, place: Place) -> None:
		self.refs.pop(place, None)

	def valid_refs(self) -> List[Tuple[Place, ReferenceState]]:
		"""Valid references in a stable order."""
		return sorted(
			((p, rs) for p, rs in self.refs.items() if rs.is_valid),
			key=lambda item: item[0].sort_key(),
		)

	# -- frames --------------------------------------------------------------

	@property
	def depth(self) -> int:
		return self.frames[-1].depth if self.frames else -1

	def push_frame(self, frame_id: int) -> ScopeFrame:
		frame = ScopeFrame(frame_id=frame_id, depth=len(self.frames))
		self.frames = self.frames + (frame,)
		return frame

	def pop_frame(self) -> ScopeFrame:
		frame = self.frames[-1]
		self.frames = self.frames[:-1]
		return frame

	def declare(self, base: PlaceBase) -> int:
		"""Record `base` as introduced by the innermost frame; return that frame's depth."""
		top = self.frames[-1]
		self.frames = self.frames[:-1] + (replace(top, bases=top.bases | {base}),)
		return top.depth

	def depth_of(self, base: PlaceBase) -> int:
		"""Depth of the frame that introduced `base` (0 when it was never declared)."""
		for frame in reversed(self.frames):
			if base in frame.bases:
				return frame.depth
		return 0

	def forget(self, bases: Iterable[PlaceBase]) -> None:
		"""Drop every ownership and reference entry rooted at one of `bases`."""
		gone = set(bases)
		self.places = {p: s for p, s in self.places.items() if p.base not in gone}
		self.moved_at = {p: s for p, s in self.moved_at.items() if p.base not in gone}
		self.refs = {p: s for p, s in self.refs.items() if p.base not in gone}

	# -- rendering -----------------------------------------------------------

	def render_ownership(self, *, include_globals: bool = False) -> str:
		"""
		One `{...}` set per open frame, e.g. `[{a:1, a.f:0, n}]`: tracked places
		carry 1 (Live) or 0 (Moved), untracked variables only their name.
		"""
		return self._render_frames(self._ownership_entries, include_globals)

	def render_references(self, *, include_globals: bool = False) -> str:
		"""
		One `{...}` set per open frame, e.g. `[{r'->{x}, {c},{r}'->x}]`.

		A reference lists its targets (`'` marks a mutable one; an invalid one
		points at nothing). Any other variable lists the valid const and mutable
		references pointing into it.
		"""
		return self._render_frames(self._reference_entries, include_globals)

	def _render_frames(self, entries: Callable[[PlaceBase], List[str]], include_globals: bool) -> str:
		# The outermost frame holds the globals.
		frames = self.frames if include_globals else self.frames[1:]
		sets = []
		for frame in frames:
			items: List[str] = []
			for base in sorted(frame.bases):
				items.extend(entries(base))
			sets.append("{" + ", ".join(items) + "}")
		return "[" + "\t".join(sets) + "]"

	def _ownership_entries(self, base: PlaceBase) -> List[str]:
		tracked = sorted((p for p in self.places if p.base == base), key=lambda p: p.sort_key())
		if not tracked:
			return [base.name]
		return [f"{p}:{int(self.places[p] is OwnershipState.LIVE)}" for p in tracked]

	def _reference_entries(self, base: PlaceBase) -> List[str]:
		out: List[str] = []
		for ref_place in sorted((p for p in self.refs if p.base == base), key=lambda p: p.sort_key()):
			rs = self.refs[ref_place]
			mark = "'" if rs.kind is RefKind.MUTABLE else ""
			targets = sorted(rs.targets, key=lambda p: p.sort_key()) if rs.is_valid else []
			out.append(f"{ref_place}{mark}->{{{', '.join(str(t) for t in targets)}}}")
		if Place(base) not in self.refs:
			const: List[str] = []
			mut: List[str] = []
			for ref_place, rs in self.valid_refs():
				if any(t.base == base for t in rs.targets):
					(mut if rs.kind is RefKind.MUTABLE else const).append(str(ref_place))
			out.append(f"{{{', '.join(const)}}},{{{', '.join(mut)}}}'->{base.name}")
		return out

	# -- snapshot / restore --------------------------------------------------

	def snapshot(self) -> "FlowState":
		"""An independent copy (all contained values are immutable)."""
		return FlowState(
			places=dict(self.places),
			moved_at=dict(self.moved_at),
			refs=dict(self.refs),
			frames=self.frames,
		)

	def restore(self, snap: "FlowState") -> None:
		self.places = dict(snap.places)
		self.moved_at = dict(snap.moved_at)
		self.refs = dict(snap.refs)
		self.frames = snap.frames


class FrameMismatch(ValueError):
	"""Two states reaching the same join disagree about the open scope frames."""


def merge_flow_states(a: FlowState, b: FlowState) -> FlowState:
	"""
	Join two states using the pointwise meet: a place is Moved if it is Moved on
	either side, a reference is Invalid if it is Invalid on either side. An
	entry present on one side only is kept as is (absent means untouched).
	"""
	if len(a.frames) != len(b.frames) or any(fa.frame_id != fb.frame_id for fa, fb in zip(a.frames, b.frames)):
		raise FrameMismatch(
			f"scope frames disagree at join: {[f.frame_id for f in a.frames]} vs {[f.frame_id for f in b.frames]}"
		)
	result = a.snapshot()
	result.frames = tuple(replace(fa, bases=fa.bases | fb.bases) for fa, fb in zip(a.frames, b.frames))
	for place, state_b in b.places.items():
		state_a = result.places.get(place)
		merged = state_b if state_a is None else merge_ownership_state(state_a, state_b)
		result.places[place] = merged
		if merged is OwnershipState.MOVED and place not in result.moved_at:
			result.moved_at[place] = b.moved_at.get(place, Span())
	for place, ref_b in b.refs.items():
		ref_a = result.refs.get(place)
		result.refs[place] = ref_b if ref_a is None else merge_reference_state(ref_a, ref_b)
	return result


__all__ = [
	"RefKind",
	"Validity",
	"InvalidationReason",
	"Invalidation",
	"ReferenceState",
	"merge_reference_state",
	"ScopeFrame",
	"FlowState",
	"FrameMismatch",
	"merge_flow_states",
]
