#!/usr/bin/env python3
# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
# author: Sławomir Liszniański; created: 2026-10-18
"""Straight-line move tracking for owner-typed (struct) places."""

from cborrow.call_effects import FnSignature
from cborrow.core.types_core import TypeTable
from cborrow.tests.support.ir_builders import (
	FnBuilder,
	addr,
	assign,
	call,
	check,
	codes,
	deref,
	ev,
	fld,
	lit,
	struct_type,
)


def _types():
	table = TypeTable()
	int_ty = table.ensure_int()
	inner = struct_type(table, "Inner", {"v": int_ty})
	outer = struct_type(table, "Outer", {"a": inner, "b": inner, "n": int_ty})
	return table, int_ty, inner, outer


def test_use_after_move_reports_the_use_and_the_move():
	table, _, inner, _ = _types()
	b = FnBuilder(table)
	stmts = [
		b.let("s", inner, line=2),
		b.let("t", inner, init=b.v("s", 3), line=3),
		ev(call("consume", b.v("s", 4), line=4), line=4),
	]
	diags = check(b, stmts)
	assert codes(diags) == ["E_USE_AFTER_MOVE"]
	diag = diags[0]
	assert diag.place == "s"
	assert diag.span.line == 4
	assert diag.cause_span is not None and diag.cause_span.line == 3
	assert diag.notes == ["'s' was moved on line 3"]
	assert diag.phase == "borrowcheck"
	assert diag.function == "f"


def test_copy_types_are_never_moved():
	table, int_ty, _, _ = _types()
	b = FnBuilder(table)
	stmts = [
		b.let("x", int_ty, init=lit(1), line=2),
		b.let("y", int_ty, init=b.v("x", 3), line=3),
		ev(call("use", b.v("x", 4)), line=4),
		ev(call("use", b.v("x", 5)), line=5),
	]
	assert check(b, stmts) == []


def test_passing_by_value_moves_with_and_without_prototype():
	table, _, inner, _ = _types()
	sigs = {"consume": FnSignature("consume", [inner], table.ensure_void())}
	for signatures in (sigs, {}):
		b = FnBuilder(table)
		stmts = [
			b.let("s", inner, line=2),
			ev(call("consume", b.v("s", 3)), line=3),
			ev(call("consume", b.v("s", 4)), line=4),
		]
		diags = check(b, stmts, signatures=signatures)
		assert codes(diags) == ["E_USE_AFTER_MOVE"]
		assert diags[0].span.line == 4


def test_moving_a_field_leaves_parent_and_siblings_usable():
	table, _, inner, outer = _types()
	b = FnBuilder(table)
	stmts = [
		b.let("o", outer, line=2),
		b.let("x", inner, init=fld(b.v("o", 3), "a"), line=3),
		b.let("y", inner, init=fld(b.v("o", 4), "b"), line=4),  # sibling: fine
		ev(call("use", fld(b.v("o", 5), "a")), line=5),  # moved field
	]
	diags = check(b, stmts)
	assert codes(diags) == ["E_USE_AFTER_MOVE"]
	assert diags[0].place == "o.a"
	assert diags[0].span.line == 5


def test_moving_the_parent_moves_its_fields():
	table, _, inner, outer = _types()
	b = FnBuilder(table)
	stmts = [
		b.let("o", outer, line=2),
		b.let("peek", inner, init=fld(b.v("o", 3), "b"), line=3),
		assign(b.v("peek", 4), fld(b.v("o", 4), "a"), line=4),
		assign(b.v("o", 5), call("make_outer", ty=outer), line=5),
		b.let("p", outer, init=b.v("o", 6), line=6),
		b.let("q", inner, init=fld(b.v("o", 7), "b"), line=7),
	]
	diags = check(b, stmts)
	assert codes(diags) == ["E_USE_AFTER_MOVE"]
	assert diags[0].place == "o.b"
	assert diags[0].span.line == 7
	assert diags[0].notes == ["'o.b' was moved on line 6"]


def test_whole_value_assignment_revives_place_and_fields():
	table, _, inner, outer = _types()
	b = FnBuilder(table)
	stmts = [
		b.let("o", outer, line=2),
		b.let("x", inner, init=fld(b.v("o", 3), "a"), line=3),
		b.let("all", outer, init=b.v("o", 4), line=4),
		assign(b.v("o", 5), call("make_outer", ty=outer), line=5),
		b.let("y", inner, init=fld(b.v("o", 6), "a"), line=6),
		b.let("z", outer, init=b.v("o", 7), line=7),
	]
	assert check(b, stmts) == []


def test_writing_a_field_of_a_moved_struct_is_a_use():
	table, int_ty, _, outer = _types()
	b = FnBuilder(table)
	stmts = [
		b.let("old", outer, line=2),
		assign(fld(b.v("old", 3), "n"), lit(5), line=3),
		b.let("new", outer, init=b.v("old", 4), line=4),
		assign(fld(b.v("old", 5), "n"), lit(3), line=5),
		b.let("fresh", outer, line=6),
		assign(b.v("old", 7), b.v("fresh", 7), line=7),
		assign(fld(b.v("old", 8), "n"), lit(3), line=8),
	]
	diags = check(b, stmts)
	assert codes(diags) == ["E_USE_AFTER_MOVE"]
	assert diags[0].place == "old.n"
	assert diags[0].span.line == 5


def test_moved_struct_carries_its_field_references():
	table, int_ty, _, _ = _types()
	holder = struct_type(table, "Holder", {"ptr": table.new_ref(int_ty, is_mut=True)})
	b = FnBuilder(table)
	stmts = [
		b.let("z", int_ty, init=lit(5), line=2),
		b.let("h", holder, line=3),
		assign(fld(b.v("h", 4), "ptr"), addr(b.v("z", 4)), line=4),
		b.let("g", holder, init=b.v("h", 5), line=5),
		assign(b.v("z", 6), lit(6), line=6),  # overwrite: g.ptr is invalid now
		ev(call("use", deref(fld(b.v("g", 7), "ptr"))), line=7),
	]
	diags = check(b, stmts)
	assert codes(diags) == ["E_INVALID_REFERENCE"]
	assert diags[0].place == "g.ptr"


def test_moving_out_from_behind_a_reference_is_reported_and_leaves_the_pointee_live():
	table, _, inner, outer = _types()
	b = FnBuilder(table)
	b.param("p", table.new_ref(inner, is_mut=False))
	stmts = [
		b.let("x", inner, init=deref(b.v("p", 2)), line=2),
		b.let("o", outer, line=3),
		b.let("r", table.new_ref(outer, is_mut=True), init=addr(b.v("o", 4)), line=4),
		b.let("y", inner, init=fld(deref(b.v("r", 5)), "a"), line=5),
		ev(call("consume", b.v("o", 6)), line=6),
	]
	diags = check(b, stmts)
	assert [(d.code, d.place, d.span.line) for d in diags] == [
		("E_MOVE_FROM_REFERENCE", "(*p)", 2),
		("E_MOVE_FROM_REFERENCE", "(*r).a", 5),
	]
	assert diags[0].message == "cannot move non-Copy value '(*p)' out from behind a reference"
