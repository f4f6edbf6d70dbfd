#!/usr/bin/env python3
# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
# author: Sławomir Liszniański; created: 2026-10-18
"""Scope exits: dangling references and returned addresses of locals."""

from cborrow.core.types_core import TypeTable
from cborrow.tests.support.ir_builders import (
	FnBuilder,
	addr,
	assign,
	block,
	call,
	check,
	codes,
	deref,
	ev,
	if_,
	lit,
	ret,
	while_,
)


def _types():
	table = TypeTable()
	int_ty = table.ensure_int()
	return table, int_ty, table.new_ref(int_ty, is_mut=True)


def test_reference_escaping_an_if_block_dangles():
	table, int_ty, ref = _types()
	b = FnBuilder(table)
	stmts = [
		b.let("r", ref, line=2),
		b.let("c", int_ty, init=lit(1), line=3),
		if_(
			b.v("c", 4),
			block(
				b.let("t", int_ty, init=lit(7), line=5),
				assign(b.v("r", 6), addr(b.v("t", 6)), line=6),
				line=4,
				end_line=7,
			),
		),
		ev(call("use", deref(b.v("r", 8))), line=8),
	]
	diags = check(b, stmts)
	assert codes(diags) == ["E_DANGLING_REFERENCE"]
	diag = diags[0]
	assert diag.message == "reference 'r' outlives 't'"
	assert diag.span.line == 8
	assert diag.cause_span is not None and diag.cause_span.line == 7
	assert diag.notes == ["'t' went out of scope on line 7"]


def test_reference_escaping_both_branches_dangles_once():
	table, int_ty, ref = _types()
	b = FnBuilder(table)
	stmts = [
		b.let("r", ref, line=2),
		b.let("c", int_ty, init=lit(1), line=3),
		if_(
			b.v("c", 4),
			block(
				b.let("t", int_ty, line=5),
				assign(b.v("r", 6), addr(b.v("t", 6)), line=6),
				end_line=7,
			),
			block(
				b.let("e", int_ty, line=8),
				assign(b.v("r", 9), addr(b.v("e", 9)), line=9),
				end_line=10,
			),
		),
		ev(call("use", deref(b.v("r", 11))), line=11),
	]
	diags = check(b, stmts)
	assert codes(diags) == ["E_DANGLING_REFERENCE"]
	assert diags[0].span.line == 11


def test_reference_escaping_a_loop_body_dangles():
	table, int_ty, ref = _types()
	b = FnBuilder(table)
	stmts = [
		b.let("r", ref, line=2),
		b.let("n", int_ty, init=lit(3), line=3),
		while_(
			b.v("n", 4),
			block(
				b.let("t", int_ty, line=5),
				assign(b.v("r", 6), addr(b.v("t", 6)), line=6),
				end_line=7,
			),
		),
		ev(call("use", deref(b.v("r", 8))), line=8),
	]
	diags = check(b, stmts)
	assert codes(diags) == ["E_DANGLING_REFERENCE"]
	assert diags[0].span.line == 8


def test_reference_used_inside_the_scope_of_its_target_is_fine():
	table, int_ty, ref = _types()
	b = FnBuilder(table)
	stmts = [
		b.let("c", int_ty, init=lit(1), line=2),
		if_(
			b.v("c", 3),
			block(
				b.let("t", int_ty, line=4),
				b.let("q", ref, init=addr(b.v("t", 5)), line=5),
				ev(call("use", deref(b.v("q", 6))), line=6),
				end_line=7,
			),
		),
	]
	assert check(b, stmts) == []


def test_reference_into_an_enclosing_scope_survives_inner_exits():
	table, int_ty, ref = _types()
	b = FnBuilder(table)
	stmts = [
		b.let("r", ref, line=2),
		block(
			b.let("a", int_ty, line=4),
			block(assign(b.v("r", 5), addr(b.v("a", 5)), line=5), end_line=6),
			ev(call("use", deref(b.v("r", 7))), line=7),
			end_line=8,
		),
	]
	assert check(b, stmts) == []


def test_nested_scope_exit_points_at_the_inner_block():
	table, int_ty, ref = _types()
	b = FnBuilder(table)
	stmts = [
		b.let("r", ref, line=2),
		block(
			b.let("a", int_ty, line=4),
			block(
				b.let("inner", int_ty, line=5),
				assign(b.v("r", 6), addr(b.v("inner", 6)), line=6),
				end_line=7,
			),
			ev(call("use", deref(b.v("r", 8))), line=8),
			end_line=9,
		),
	]
	diags = check(b, stmts)
	assert codes(diags) == ["E_DANGLING_REFERENCE"]
	assert diags[0].notes == ["'inner' went out of scope on line 7"]


def test_reassigning_a_dangling_reference_makes_it_usable_again():
	table, int_ty, ref = _types()
	b = FnBuilder(table)
	stmts = [
		b.let("x", int_ty, init=lit(1), line=2),
		b.let("r", ref, line=3),
		block(
			b.let("t", int_ty, line=5),
			assign(b.v("r", 6), addr(b.v("t", 6)), line=6),
			end_line=7,
		),
		assign(b.v("r", 8), addr(b.v("x", 8)), line=8),
		ev(call("use", deref(b.v("r", 9))), line=9),
	]
	assert check(b, stmts) == []


def test_returning_the_address_of_a_local_or_parameter():
	table, int_ty, _ = _types()
	b = FnBuilder(table)
	b.param("a", int_ty)
	stmts = [
		b.let("x", int_ty, init=lit(1), line=2),
		b.let("c", int_ty, init=lit(0), line=3),
		if_(b.v("c", 4), block(ret(addr(b.v("a", 5)), line=5))),
		ret(addr(b.v("x", 7)), line=7),
	]
	diags = check(b, stmts)
	assert [(d.code, d.message, d.span.line) for d in diags] == [
		("E_DANGLING_REFERENCE", "returning the address of local 'a'", 5),
		("E_DANGLING_REFERENCE", "returning the address of local 'x'", 7),
	]


def test_returning_a_reference_to_a_local():
	table, int_ty, ref = _types()
	b = FnBuilder(table)
	stmts = [
		b.let("t", int_ty, init=lit(1), line=2),
		b.let("r", ref, init=addr(b.v("t", 3)), line=3),
		ret(b.v("r", 4), line=4),
	]
	diags = check(b, stmts)
	assert codes(diags) == ["E_DANGLING_REFERENCE"]
	assert diags[0].message == "returning reference 'r' to local 't'"


def test_returning_addresses_of_globals_and_pointees_is_fine():
	table, int_ty, ref = _types()
	b = FnBuilder(table)
	b.global_var("counter", int_ty)
	b.param("p", ref)
	stmts = [
		b.let("c", int_ty, init=lit(0), line=2),
		if_(b.v("c", 3), block(ret(addr(b.v("counter", 4)), line=4))),
		ret(b.v("p", 6), line=6),
	]
	assert check(b, stmts) == []
