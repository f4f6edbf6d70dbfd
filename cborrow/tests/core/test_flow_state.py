#!/usr/bin/env python3
# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
# author: Sławomir Liszniański; created: 2026-10-18
"""FlowState snapshots and the join (meet) of two states."""

import pytest

from cborrow.borrow_checker import FieldProj, OwnershipState, Place, PlaceBase, PlaceKind
from cborrow.core.span import Span
from cborrow.state import (
	FlowState,
	FrameMismatch,
	Invalidation,
	InvalidationReason,
	ReferenceState,
	RefKind,
	Validity,
	merge_flow_states,
)


def _place(name: str, bid: int) -> Place:
	return Place(PlaceBase(PlaceKind.LOCAL, bid, name))


def _state_with_frames() -> FlowState:
	state = FlowState()
	state.push_frame(0)
	state.push_frame(1)
	return state


def test_snapshot_is_independent_of_later_mutation():
	state = _state_with_frames()
	x = _place("x", 1)
	snap = state.snapshot()
	state.set(x, OwnershipState.MOVED, at=Span(line=3))
	assert snap.get(x) is OwnershipState.LIVE
	state.restore(snap)
	assert state.get(x) is OwnershipState.LIVE
	assert state == snap


def test_field_of_moved_aggregate_reports_the_moved_ancestor():
	state = _state_with_frames()
	s = _place("s", 1)
	field = s.with_projection(FieldProj("inner"))
	state.set(s, OwnershipState.MOVED, at=Span(line=7))
	assert state.moved_ancestor(field) == s
	assert state.moved_at[s].line == 7
	state.set(s, OwnershipState.LIVE)
	assert state.moved_ancestor(field) is None
	assert s not in state.moved_at


def test_join_is_moved_if_moved_on_either_side():
	a = _state_with_frames()
	b = a.snapshot()
	x = _place("x", 1)
	b.set(x, OwnershipState.MOVED, at=Span(line=4))
	merged = merge_flow_states(a, b)
	assert merged.get(x) is OwnershipState.MOVED
	assert merged.moved_at[x].line == 4
	# Inputs are untouched.
	assert a.get(x) is OwnershipState.LIVE


def test_join_is_invalid_if_invalid_on_either_side_and_unions_targets():
	a = _state_with_frames()
	b = a.snapshot()
	r = _place("r", 1)
	x = _place("x", 2)
	y = _place("y", 3)
	a.set_ref(r, ReferenceState(Validity.VALID, RefKind.CONST, frozenset({x}), lifetime=1))
	cause = Invalidation(InvalidationReason.SCOPE_EXIT, Span(line=9), y)
	b.set_ref(r, ReferenceState(Validity.INVALID, RefKind.CONST, frozenset({y}), lifetime=2, cause=cause))
	merged = merge_flow_states(a, b).get_ref(r)
	assert merged.validity is Validity.INVALID
	assert merged.targets == frozenset({x, y})
	assert merged.lifetime == 2
	assert merged.cause == cause


def test_frames_must_agree_at_a_join():
	a = _state_with_frames()
	b = a.snapshot()
	b.push_frame(2)
	with pytest.raises(FrameMismatch):
		merge_flow_states(a, b)


def test_depth_of_follows_the_declaring_frame():
	state = _state_with_frames()
	outer = PlaceBase(PlaceKind.LOCAL, 1, "outer")
	inner = PlaceBase(PlaceKind.LOCAL, 2, "inner")
	state.declare(outer)
	state.push_frame(2)
	state.declare(inner)
	assert state.depth_of(outer) == 1
	assert state.depth_of(inner) == 2
	frame = state.pop_frame()
	assert frame.bases == frozenset({inner})
