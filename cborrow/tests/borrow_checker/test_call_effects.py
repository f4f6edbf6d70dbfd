#!/usr/bin/env python3
# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
# author: Sławomir Liszniański; created: 2026-10-18
"""Call effects derived from callee signatures, and their effect on flow state."""

from cborrow import ir as I
from cborrow.call_effects import ArgEffectKind, FnSignature, resolve_call_effects
from cborrow.core.types_core import TypeTable
from cborrow.tests.support.ir_builders import (
	FnBuilder,
	addr,
	call,
	check,
	codes,
	deref,
	ev,
	lit,
	struct_type,
)


def _types():
	table = TypeTable()
	int_ty = table.ensure_int()
	owner = struct_type(table, "Owner", {"value": int_ty})
	return table, int_ty, owner


def _kinds(signature, args, table, types):
	effects = resolve_call_effects(signature, args, type_table=table, arg_type=lambda e: types.get(getattr(e, "name", None)))
	return [eff.kind for eff in effects]


def test_effects_follow_declared_parameter_types():
	table, int_ty, owner = _types()
	const_ref = table.new_ref(int_ty, is_mut=False)
	mut_ref = table.new_ref(int_ty, is_mut=True)
	sig = FnSignature("g", [const_ref, mut_ref, owner, mut_ref, int_ty])
	types = {"x": int_ty, "o": owner, "r": mut_ref, "n": int_ty}
	args = [
		I.AddrOf(I.Var("x", 1)),
		I.AddrOf(I.Var("x", 1)),
		I.Var("o", 2),
		I.Var("r", 3),
		I.Var("n", 4),
	]
	assert _kinds(sig, args, table, types) == [
		ArgEffectKind.BORROW_CONST,
		ArgEffectKind.BORROW_MUT,
		ArgEffectKind.MOVE,
		ArgEffectKind.USE_REF,
		ArgEffectKind.READ,
	]


def test_unknown_parameters_are_assumed_mutable():
	table, int_ty, _ = _types()
	const_ref = table.new_ref(int_ty, is_mut=False)
	args = [I.AddrOf(I.Var("x", 1)), I.AddrOf(I.Var("y", 2))]
	for sig in (None, FnSignature("g"), FnSignature("g", [const_ref], variadic=True)):
		kinds = _kinds(sig, args, table, {})
		assert kinds[1] is ArgEffectKind.BORROW_MUT
	assert _kinds(FnSignature("g", [const_ref], variadic=True), args, table, {})[0] is ArgEffectKind.BORROW_CONST


def test_rvalue_arguments_are_plain_reads():
	table, int_ty, owner = _types()
	args = [I.Literal(3), I.Binary("+", I.Var("x", 1), I.Literal(1))]
	kinds = _kinds(FnSignature("g", [owner, owner]), args, table, {"x": int_ty})
	assert kinds == [ArgEffectKind.READ] * 2


def test_passing_an_owner_by_value_moves_it_and_invalidates_its_references():
	table, int_ty, owner = _types()
	const_ref = table.new_ref(owner, is_mut=False)
	b = FnBuilder(table)
	stmts = [
		b.let("o", owner, line=2),
		b.let("r", const_ref, init=addr(b.v("o", 3)), line=3),
		ev(call("consume", b.v("o", 4)), line=4),
		ev(call("peek", b.v("r", 5)), line=5),
	]
	sigs = {
		"consume": FnSignature("consume", [owner]),
		"peek": FnSignature("peek", [const_ref]),
	}
	diags = check(b, stmts, signatures=sigs)
	assert codes(diags) == ["E_INVALID_REFERENCE"]
	assert "'o' was moved" in diags[0].notes[0]


def test_passing_an_invalid_reference_is_a_use():
	table, int_ty, _ = _types()
	ref = table.new_ref(int_ty, is_mut=True)
	b = FnBuilder(table)
	stmts = [
		b.let("x", int_ty, init=lit(1), line=2),
		b.let("m1", ref, init=addr(b.v("x", 3)), line=3),
		b.let("m2", ref, init=addr(b.v("x", 4)), line=4),
		ev(call("foo", b.v("m1", 5)), line=5),
	]
	diags = check(b, stmts)
	assert codes(diags) == ["E_INVALID_REFERENCE"]
	assert diags[0].place == "m1"
	assert diags[0].span.line == 5


def test_borrow_for_a_call_only_touches_its_own_target():
	table, int_ty, _ = _types()
	ref = table.new_ref(int_ty, is_mut=True)
	b = FnBuilder(table)
	stmts = [
		b.let("x", int_ty, init=lit(1), line=2),
		b.let("y", int_ty, init=lit(2), line=3),
		b.let("ry", ref, init=addr(b.v("y", 4)), line=4),
		b.let("rx", ref, init=addr(b.v("x", 5)), line=5),
		ev(call("bar", addr(b.v("x", 6))), line=6),
		ev(call("use", deref(b.v("ry", 7))), line=7),
		ev(call("use", deref(b.v("rx", 8))), line=8),
	]
	diags = check(b, stmts)
	assert [(d.place, d.span.line) for d in diags] == [("rx", 8)]


def test_const_parameter_keeps_const_references_valid():
	table, int_ty, _ = _types()
	const_ref = table.new_ref(int_ty, is_mut=False)
	b = FnBuilder(table)
	stmts = [
		b.let("x", int_ty, init=lit(1), line=2),
		b.let("c", const_ref, init=addr(b.v("x", 3)), line=3),
		ev(call("show", addr(b.v("x", 4))), line=4),
		ev(call("use", deref(b.v("c", 5))), line=5),
	]
	sigs = {"show": FnSignature("show", [const_ref])}
	assert check(b, stmts, signatures=sigs) == []
	# Without a prototype the callee may write through the pointer.
	b = FnBuilder(table)
	stmts = [
		b.let("x", int_ty, init=lit(1), line=2),
		b.let("c", const_ref, init=addr(b.v("x", 3)), line=3),
		ev(call("show", addr(b.v("x", 4))), line=4),
		ev(call("use", deref(b.v("c", 5))), line=5),
	]
	assert codes(check(b, stmts)) == ["E_INVALID_REFERENCE"]


def test_borrowing_a_moved_value_for_a_call_is_a_use_after_move():
	table, int_ty, owner = _types()
	b = FnBuilder(table)
	stmts = [
		b.let("o", owner, line=2),
		b.let("p", owner, init=b.v("o", 3), line=3),
		ev(call("inspect", addr(b.v("o", 4))), line=4),
	]
	diags = check(b, stmts)
	assert codes(diags) == ["E_USE_AFTER_MOVE"]
	assert diags[0].span.line == 4
