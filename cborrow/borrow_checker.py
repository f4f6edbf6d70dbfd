#!/usr/bin/env python3
# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
# author: Sławomir Liszniański; created: 2026-10-18
"""
Borrow-checker scaffolding: place representation and basic lvalue detection.

This models the "where" of values (variables + field projections) so the pass
can track moves and references per place. It answers:
  * Is this IR expression an lvalue (borrowable/moveable place)?
  * If so, what place does it identify?
  * Do two places overlap?

Dereference is kept as a projection here (`*r` is `Place(r, (DerefProj(),))`);
the pass collapses it to the reference's current target(s), because that
needs flow state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from cborrow import ir as I


@dataclass(frozen=True)
class FieldProj:
	"""Field access projection (e.g., `.name`)."""

	name: str


@dataclass(frozen=True)
class DerefProj:
	"""
	Dereference projection (`*p`, and the implicit one in `p->f`).

	Only ever present in places that have not been collapsed yet.
	"""
	pass


Projection = FieldProj | DerefProj


class OwnershipState(Enum):
	"""Ownership state for owner-typed places: Live or Moved."""

	LIVE = auto()
	MOVED = auto()


def merge_ownership_state(a: OwnershipState, b: OwnershipState) -> OwnershipState:
	"""Meet operation for ownership used at control-flow joins: MOVED dominates."""
	if a is b:
		return a
	return OwnershipState.MOVED


class PlaceKind(Enum):
	LOCAL = auto()
	PARAM = auto()
	GLOBAL = auto()
	UNKNOWN = auto()  # synthetic pointee of a pointer whose target is not visible


@dataclass(frozen=True, order=True)
class PlaceBase:
	"""Identity for the root of a Place (locals, params, globals, unknown pointees)."""

	kind: PlaceKind = field(compare=False)
	local_id: int
	name: str


@dataclass(frozen=True)
class Place:
	"""
	A borrowable/moveable storage location.

	`base` carries identity (local/param/etc). `projections` capture field
	accesses, so `foo.bar.baz` becomes base `foo` with projections `.bar`, `.baz`.
	"""

	base: PlaceBase
	projections: Tuple[Projection, ...] = field(default_factory=tuple)

	def with_projection(self, proj: Projection) -> "Place":
		"""Return a new Place with an additional projection appended."""
		return Place(self.base, self.projections + (proj,))

	def with_projections(self, projs: Tuple[Projection, ...]) -> "Place":
		return Place(self.base, self.projections + tuple(projs))

	@property
	def parent(self) -> Optional["Place"]:
		"""The enclosing place (`x.a` for `x.a.b`), or None for a root."""
		if not self.projections:
			return None
		return Place(self.base, self.projections[:-1])

	@property
	def root(self) -> "Place":
		"""The whole variable this place belongs to (`x` for `x.a.b`)."""
		return Place(self.base)

	def ancestors(self) -> Iterator["Place"]:
		"""Yield the strict ancestors of this place, nearest first."""
		cur = self.parent
		while cur is not None:
			yield cur
			cur = cur.parent

	def has_deref(self) -> bool:
		return any(isinstance(p, DerefProj) for p in self.projections)

	def is_prefix_of(self, other: "Place") -> bool:
		"""True when `other` is this place or one of its descendants."""
		if self.base != other.base or len(self.projections) > len(other.projections):
			return False
		return other.projections[: len(self.projections)] == self.projections

	def sort_key(self) -> Tuple:
		return (self.base.local_id, self.base.name, self.display())

	def display(self) -> str:
		"""Render the place the way it is spelled in C (`x.value`, `(*p).f`)."""
		text = self.base.name
		for proj in self.projections:
			if isinstance(proj, FieldProj):
				text = f"{text}.{proj.name}"
			else:
				text = f"(*{text})"
		return text

	def __str__(self) -> str:
		return self.display()


def places_overlap(a: Place, b: Place) -> bool:
	"""
	Return True when two places may refer to overlapping storage.

	This function is the single source of truth for "place overlap" used by
	reference invalidation, moves and scope exits:
	- Different bases never overlap.
	- Prefix overlap counts: `x` overlaps `x.field` and `x.field.inner`.
	- Sibling fields are disjoint: `x.a` does not overlap `x.b`.
	"""
	if a.base != b.base:
		return False
	n = min(len(a.projections), len(b.projections))
	return a.projections[:n] == b.projections[:n]


PlaceId = int  # stable handle into a PlaceTable


class PlaceTable:
	"""
	Arena of places indexed by stable integer handles.

	Interning a place interns its ancestors first and records each node under
	its parent, so "all known descendants of p" is a subtree walk instead of a
	scan over every tracked place.
	"""

	def __init__(self) -> None:
		self._ids: Dict[Place, PlaceId] = {}
		self._places: List[Place] = []
		self._children: List[List[PlaceId]] = []

	def __len__(self) -> int:
		return len(self._places)

	def intern(self, place: Place) -> PlaceId:
		"""Return the handle for `place`, interning it and its ancestors on first sight."""
		pid = self._ids.get(place)
		if pid is not None:
			return pid
		parent = place.parent
		parent_id = self.intern(parent) if parent is not None else None
		pid = len(self._places)
		self._ids[place] = pid
		self._places.append(place)
		self._children.append([])
		if parent_id is not None:
			self._children[parent_id].append(pid)
		return pid

	def descendants(self, place: Place) -> List[Place]:
		"""All interned strict descendants of `place`, in interning order."""
		out: List[Place] = []
		stack = list(reversed(self._children[self.intern(place)]))
		while stack:
			pid = stack.pop()
			out.append(self._places[pid])
			stack.extend(reversed(self._children[pid]))
		return out


BaseLookup = Callable[[I.Var], Optional[PlaceBase]]


def place_from_expr(expr: I.Expr, *, base_lookup: BaseLookup) -> Optional[Place]:
	"""
	Construct a `Place` from an IR expression when the expression is an lvalue.

	Indexing collapses onto the indexed aggregate (`a[i]` is the place `a`):
	element-level precision is not tracked. Casts are transparent.
	Returns None for rvalues.
	"""
	if isinstance(expr, I.Var):
		base = base_lookup(expr)
		if base is None:
			return None
		return Place(base)
	if isinstance(expr, I.Field):
		base_place = place_from_expr(expr.subject, base_lookup=base_lookup)
		if base_place is None:
			return None
		if expr.through_pointer:
			base_place = base_place.with_projection(DerefProj())
		return base_place.with_projection(FieldProj(expr.name))
	if isinstance(expr, I.Deref):
		base_place = place_from_expr(expr.subject, base_lookup=base_lookup)
		if base_place is None:
			return None
		return base_place.with_projection(DerefProj())
	if isinstance(expr, I.Index):
		return place_from_expr(expr.subject, base_lookup=base_lookup)
	if isinstance(expr, I.Cast):
		return place_from_expr(expr.expr, base_lookup=base_lookup)
	return None


__all__ = [
	"FieldProj",
	"DerefProj",
	"Projection",
	"OwnershipState",
	"merge_ownership_state",
	"PlaceKind",
	"PlaceBase",
	"Place",
	"PlaceId",
	"PlaceTable",
	"places_overlap",
	"place_from_expr",
]
