#!/usr/bin/env python3
# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
# author: Sławomir Liszniański; created: 2026-10-18
"""Place identity, overlap and the place arena."""

from cborrow import ir as I
from cborrow.borrow_checker import (
	DerefProj,
	FieldProj,
	Place,
	PlaceBase,
	PlaceKind,
	PlaceTable,
	place_from_expr,
	places_overlap,
)


def _base(name: str, bid: int = 1) -> PlaceBase:
	return PlaceBase(PlaceKind.LOCAL, bid, name)


def _lookup(var: I.Var) -> PlaceBase:
	return _base(var.name, var.binding_id or 0)


def test_prefix_places_overlap_and_siblings_do_not():
	x = Place(_base("x"))
	xa = x.with_projection(FieldProj("a"))
	xb = x.with_projection(FieldProj("b"))
	xab = xa.with_projection(FieldProj("b"))
	assert places_overlap(x, xa)
	assert places_overlap(xab, x)
	assert places_overlap(xa, xa)
	assert not places_overlap(xa, xb)
	assert not places_overlap(xab, xb)


def test_different_roots_never_overlap():
	assert not places_overlap(Place(_base("x", 1)), Place(_base("y", 2)))
	# Same spelling, different binding (shadowing) is a different root.
	assert not places_overlap(Place(_base("x", 1)), Place(_base("x", 3)))


def test_place_from_expr_builds_field_and_deref_projections():
	p = I.Var("p", 1)
	place = place_from_expr(I.Field(p, "next", through_pointer=True), base_lookup=_lookup)
	assert place == Place(_base("p"), (DerefProj(), FieldProj("next")))
	assert place.has_deref()
	assert place.display() == "(*p).next"


def test_indexing_collapses_onto_the_aggregate_and_rvalues_are_not_places():
	arr = I.Var("arr", 1)
	assert place_from_expr(I.Index(arr, I.Literal(3)), base_lookup=_lookup) == Place(_base("arr"))
	assert place_from_expr(I.Cast(I.Var("v", 2)), base_lookup=_lookup) == Place(_base("v", 2))
	assert place_from_expr(I.Call("f", []), base_lookup=_lookup) is None
	assert place_from_expr(I.Binary("+", arr, I.Literal(1)), base_lookup=_lookup) is None


def test_place_table_tracks_descendants_in_interning_order():
	table = PlaceTable()
	s = Place(_base("s"))
	sa = s.with_projection(FieldProj("a"))
	sav = sa.with_projection(FieldProj("v"))
	sb = s.with_projection(FieldProj("b"))
	table.intern(sav)  # interns s and s.a on the way
	table.intern(sb)
	assert len(table) == 4
	assert table.descendants(s) == [sa, sav, sb]
	assert table.descendants(sa) == [sav]
	assert places_overlap(s, sav)
	assert not places_overlap(sa, sb)
	assert s.root == sav.root == s


def test_ancestors_are_nearest_first():
	s = Place(_base("s"))
	deep = s.with_projections((FieldProj("a"), FieldProj("b"), FieldProj("c")))
	assert [p.display() for p in deep.ancestors()] == ["s.a.b", "s.a", "s"]
	assert s.is_prefix_of(deep)
	assert not deep.is_prefix_of(s)
