#!/usr/bin/env python3
# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
# author: Sławomir Liszniański; created: 2026-10-18
"""
Borrow-check pass: ownership and reference validity over a function CFG.

Scope:
- Operates as a forward dataflow over a `FunctionCfg` (worklist fixpoint over
  basic blocks, pointwise meet at joins).
- Tracks Live/Moved per owner-typed place (field granular) and flags
  use-after-move.
- Tracks Valid/Invalid per reference. Creating a conflicting reference
  silently invalidates the older ones (unless the strict mode is on); only a
  later use of an invalid reference is reported.
- Scope exits invalidate references to the places the exiting frame
  introduced; using such a reference is reported as dangling.
- Calls are interpreted through `cborrow.call_effects`.

Diagnostics are produced by a single reporting pass over the converged
in-states, so every violation is reported once and the order is stable.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Tuple

from cborrow import ir as I
from cborrow.borrow_checker import (
	OwnershipState,
	Place,
	PlaceBase,
	PlaceKind,
	PlaceTable,
	DerefProj,
	FieldProj,
	place_from_expr,
	places_overlap,
)
from cborrow.call_effects import ArgEffectKind, FnSignature, resolve_call_effects
from cborrow.cfg import GLOBAL_FRAME_ID, BasicBlock, FunctionCfg
from cborrow.config import AnalysisMode, CheckerConfig, DumpKind
from cborrow.core.diagnostics import Diagnostic, ViolationKind
from cborrow.core.span import Span
from cborrow.core.types_core import TypeClass, TypeId, TypeTable
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

logger = logging.getLogger(__name__)


class MalformedInput(ValueError):
	"""
	The CFG handed to the pass is inconsistent (unknown binding, non-lvalue
	assignment target, unbalanced scope frames). Halts analysis of the
	current function only.
	"""

	def __init__(self, message: str, *, loc: object | None = None) -> None:
		super().__init__(message)
		self.loc = loc


def _strip_casts(expr: I.Expr) -> I.Expr:
	while isinstance(expr, I.Cast):
		expr = expr.expr
	return expr


def _kind_word(kind: RefKind) -> str:
	return "mutable" if kind is RefKind.MUTABLE else "const"


@dataclass
class BorrowChecker:
	"""
	Ownership/reference checker for one function at a time.

	Inputs:
	- type_table: answers Copy vs Owner vs Reference and struct layouts.
	- signatures: callee name -> declared signature (missing = unknown callee).
	- config: analysis mode and tracing.
	"""

	type_table: TypeTable
	signatures: Mapping[str, FnSignature] = field(default_factory=dict)
	config: CheckerConfig = field(default_factory=CheckerConfig)
	diagnostics: List[Diagnostic] = field(default_factory=list)
	_cfg: Optional[FunctionCfg] = field(init=False, default=None, repr=False)
	_places: PlaceTable = field(init=False, default_factory=PlaceTable, repr=False)
	_unknown_types: Dict[PlaceBase, Optional[TypeId]] = field(init=False, default_factory=dict, repr=False)
	_reporting: bool = field(init=False, default=False, repr=False)
	_reported: Set[Tuple[object, ...]] = field(init=False, default_factory=set, repr=False)
	_current: Optional[object] = field(init=False, default=None, repr=False)

	# -- entry points ----------------------------------------------------------

	def check_function(self, cfg: FunctionCfg) -> List[Diagnostic]:
		"""Analyse one function CFG and return its violations in source order."""
		self.diagnostics.clear()
		self._cfg = cfg
		self._places = PlaceTable()
		self._unknown_types = {}
		self._reported = set()
		self._reporting = False
		try:
			in_states = self._solve(cfg)
			self._reporting = True
			for blk in cfg.blocks:
				in_state = in_states.get(blk.id)
				if in_state is not None:
					self._transfer_block(blk, in_state)
		except MalformedInput as exc:
			self.diagnostics.append(
				Diagnostic(
					message=f"malformed input in '{cfg.name}': {exc}",
					code=ViolationKind.MALFORMED_INPUT.value,
					phase="borrowcheck",
					span=Span.from_loc(exc.loc),
					function=cfg.name,
				)
			)
		finally:
			self._reporting = False
		return self._ordered(self.diagnostics)

	def resolve(self, expr: I.Expr, state: FlowState) -> Place:
		"""
		Map an lvalue expression to its canonical place, collapsing dereferences
		to the reference's current target (the first in stable order when a join
		left several).
		"""
		places = self.resolve_all(expr, state)
		return places[0]

	def resolve_all(self, expr: I.Expr, state: FlowState) -> List[Place]:
		"""All places an lvalue expression may denote in `state`."""
		place = place_from_expr(_strip_casts(expr), base_lookup=self._base_lookup)
		if place is None:
			raise MalformedInput("expression is not an lvalue", loc=I.expr_span(expr))
		return self._collapse(state, place, I.expr_span(expr), check=False)

	@staticmethod
	def overlaps(a: Place, b: Place) -> bool:
		return places_overlap(a, b)

	# -- fixpoint --------------------------------------------------------------

	def _initial_state(self, cfg: FunctionCfg) -> FlowState:
		state = FlowState()
		state.push_frame(GLOBAL_FRAME_ID)
		for gid in cfg.globals:
			state.declare(self._base_for(gid))
		return state

	def _solve(self, cfg: FunctionCfg) -> Dict[int, FlowState]:
		"""Compute the fixpoint in-state of every reachable block."""
		in_states: Dict[int, FlowState] = {cfg.entry: self._initial_state(cfg)}
		worklist = [cfg.entry]
		while worklist:
			bid = worklist.pop()
			blk = cfg.block(bid)
			out_state = self._transfer_block(blk, in_states[bid])
			for succ in blk.successors:
				prev = in_states.get(succ)
				if prev is None:
					in_states[succ] = out_state.snapshot()
					worklist.append(succ)
					continue
				merged = self._merge_states(prev, out_state)
				if merged != prev:
					in_states[succ] = merged
					worklist.append(succ)
		return in_states

	def _merge_states(self, a: FlowState, b: FlowState) -> FlowState:
		try:
			return merge_flow_states(a, b)
		except FrameMismatch as exc:
			raise MalformedInput(str(exc)) from exc

	def _transfer_block(self, block: BasicBlock, in_state: FlowState) -> FlowState:
		"""
		Transfer function for a single basic block: walk statements and the
		terminator condition, producing the out-state. Never mutates `in_state`.
		"""
		state = in_state.snapshot()
		for stmt in block.statements:
			self._transfer_stmt(state, stmt)
			self._dump(state, stmt)
		term = block.terminator
		if term is not None and term.kind in ("branch", "loop") and term.cond is not None:
			self._current = term
			self._visit_expr(state, term.cond)
		return state

	def _transfer_stmt(self, state: FlowState, stmt: I.Stmt) -> None:
		self._current = stmt
		if isinstance(stmt, I.Declare):
			self._transfer_declare(state, stmt)
		elif isinstance(stmt, I.Assign):
			self._transfer_assign(state, stmt)
		elif isinstance(stmt, I.Eval):
			self._visit_expr(state, stmt.expr)
		elif isinstance(stmt, I.Return):
			self._transfer_return(state, stmt)
		elif isinstance(stmt, I.ScopeEnter):
			state.push_frame(stmt.frame_id)
		elif isinstance(stmt, I.ScopeExit):
			self._transfer_scope_exit(state, stmt)
		else:
			raise MalformedInput(f"unexpected statement {type(stmt).__name__} in a basic block", loc=getattr(stmt, "span", None))

	# -- declarations, types, places -------------------------------------------

	def _decl(self, binding_id: Optional[int], name: str = "?", loc: object | None = None) -> I.VarDecl:
		if self._cfg is None:
			raise MalformedInput(f"variable '{name}' looked up outside of a function", loc=loc)
		if binding_id is None:
			raise MalformedInput(f"unresolved variable '{name}'", loc=loc)
		decl = self._cfg.decls.get(binding_id)
		if decl is None:
			raise MalformedInput(f"unknown variable '{name}' (binding {binding_id})", loc=loc)
		return decl

	def _base_for(self, binding_id: int) -> PlaceBase:
		decl = self._decl(binding_id)
		if decl.is_global:
			kind = PlaceKind.GLOBAL
		elif decl.is_param:
			kind = PlaceKind.PARAM
		else:
			kind = PlaceKind.LOCAL
		return PlaceBase(kind, decl.binding_id, decl.name)

	def _base_lookup(self, var: I.Var) -> Optional[PlaceBase]:
		self._decl(var.binding_id, var.name, var.span)
		return self._base_for(var.binding_id)  # type: ignore[arg-type]

	def _place_type(self, place: Place) -> Optional[TypeId]:
		if place.base.kind is PlaceKind.UNKNOWN:
			ty = self._unknown_types.get(place.base)
		else:
			ty = self._decl(place.base.local_id, place.base.name).ty
		for proj in place.projections:
			if ty is None:
				return None
			if isinstance(proj, FieldProj):
				ty = self.type_table.field_type(ty, proj.name) if self.type_table.is_owner(ty) else None
			else:
				ty = self.type_table.pointee(ty)
		return ty

	def _expr_type(self, expr: I.Expr) -> Optional[TypeId]:
		if isinstance(expr, I.Cast) and expr.ty is not None:
			return expr.ty
		expr = _strip_casts(expr)
		if isinstance(expr, I.Call):
			return expr.ty
		place = place_from_expr(expr, base_lookup=self._base_lookup)
		if place is None:
			return None
		return self._place_type(place)

	def _classify_place(self, place: Place) -> TypeClass:
		return self.type_table.classify(self._place_type(place))

	def _unknown_pointee(self, ref_place: Place) -> Place:
		"""
		Synthetic target for a reference whose pointee is not visible (pointer
		parameters, globals, fields, call results).

		A reference stored inside unknown memory gets one pointee per
		(origin, field) pair, so following `p->next` chains stays finite.
		"""
		if ref_place.base.kind is PlaceKind.UNKNOWN:
			origin = ref_place.base.name.split("->")[0]
			last = next((p.name for p in reversed(ref_place.projections) if isinstance(p, FieldProj)), "*")
			name = f"{origin}->{last}"
		else:
			name = f"?{ref_place.display()}"
		base = PlaceBase(PlaceKind.UNKNOWN, -1, name)
		if base not in self._unknown_types:
			self._unknown_types[base] = self.type_table.pointee(self._place_type(ref_place))
		return Place(base)

	def _ref_kind_for(self, ty: Optional[TypeId]) -> RefKind:
		if self.type_table.is_ref(ty) and not self.type_table.is_mut_ref(ty):
			return RefKind.CONST
		return RefKind.MUTABLE

	def _ref_state_for(self, state: FlowState, ref_place: Place) -> ReferenceState:
		"""The state of `ref_place`, materialising a valid unknown-pointee reference if it has none."""
		rs = state.get_ref(ref_place)
		if rs is None:
			rs = ReferenceState(
				validity=Validity.VALID,
				kind=self._ref_kind_for(self._place_type(ref_place)),
				targets=frozenset({self._unknown_pointee(ref_place)}),
			)
			state.set_ref(ref_place, rs)
		return rs

	def _collapse(self, state: FlowState, place: Place, span: Span, *, check: bool = True) -> List[Place]:
		"""
		Replace every dereference in `place` by the target(s) of the reference
		being dereferenced. With `check`, each dereferenced reference counts as a
		use and is validated.
		"""
		idx = next((i for i, proj in enumerate(place.projections) if isinstance(proj, DerefProj)), None)
		if idx is None:
			self._places.intern(place)
			return [place]
		ref_place = Place(place.base, place.projections[:idx])
		if check and not self._check_ref_use(state, ref_place, span):
			# Already reported; what it pointed at is not examined any further.
			return []
		rs = self._ref_state_for(state, ref_place)
		rest = place.projections[idx + 1 :]
		out: List[Place] = []
		for target in sorted(rs.targets, key=lambda p: p.sort_key()):
			for collapsed in self._collapse(state, target.with_projections(rest), span, check=check):
				if collapsed not in out:
					out.append(collapsed)
		return out

	def _span_of(self, expr: I.Expr) -> Span:
		"""Span of `expr`, or of the statement being transferred when it has none."""
		return I.expr_span(expr, getattr(self._current, "span", None))

	def _is_function_local(self, state: FlowState, place: Place) -> bool:
		if place.base.kind in (PlaceKind.GLOBAL, PlaceKind.UNKNOWN):
			return False
		return state.depth_of(place.base) >= 1

	# -- reporting ---------------------------------------------------------------

	def _report(
		self,
		kind: ViolationKind,
		message: str,
		*,
		place: Optional[Place],
		span: Span,
		cause_span: Optional[Span] = None,
		notes: Optional[List[str]] = None,
	) -> None:
		if not self._reporting:
			return
		key = (kind, place, span.line, span.column, id(self._current), message)
		if key in self._reported:
			return
		self._reported.add(key)
		self.diagnostics.append(
			Diagnostic(
				message=message,
				code=kind.value,
				phase="borrowcheck",
				span=span,
				notes=list(notes or []),
				place=place.display() if place is not None else None,
				cause_span=cause_span,
				function=self._cfg.name if self._cfg is not None else None,
			)
		)

	def _trace(self, message: str, *args: object) -> None:
		if self._reporting and self.config.trace:
			logger.debug(message, *args)

	def _dump(self, state: FlowState, stmt: I.Stmt) -> None:
		"""Log the ownership or the reference sets after `stmt`, as configured."""
		if not self._reporting or self.config.dump is DumpKind.NONE:
			return
		if self.config.dump is DumpKind.OWNERSHIP:
			text = state.render_ownership(include_globals=self.config.dump_globals)
		else:
			text = state.render_references(include_globals=self.config.dump_globals)
		logger.debug("%s:\t%s", self._line(getattr(stmt, "span", None)), text)

	@staticmethod
	def _ordered(diags: List[Diagnostic]) -> List[Diagnostic]:
		indexed = list(enumerate(diags))
		indexed.sort(
			key=lambda item: (
				item[1].span.line is None,
				item[1].span.line or 0,
				item[1].span.column or 0,
				item[0],
			)
		)
		return [d for _, d in indexed]

	@staticmethod
	def _line(span: Optional[Span]) -> str:
		if span is None or span.line is None:
			return "?"
		return str(span.line)

	# -- use checks ---------------------------------------------------------------

	def _check_live(self, state: FlowState, place: Place, span: Span) -> bool:
		"""Precondition of every use of a place: neither it nor an enclosing aggregate is Moved."""
		moved = state.moved_ancestor(place)
		if moved is None:
			return True
		moved_at = state.moved_at.get(moved)
		message = f"use of moved value '{place}'"
		if moved != place:
			message += f" ('{moved}' was moved)"
		notes = [f"'{moved}' was moved on line {self._line(moved_at)}"] if moved_at is not None else []
		self._report(
			ViolationKind.USE_OF_MOVED_VALUE,
			message,
			place=place,
			span=span,
			cause_span=moved_at,
			notes=notes,
		)
		return False

	def _check_ref_use(self, state: FlowState, ref_place: Place, span: Span) -> bool:
		"""Precondition of dereferencing / passing on a reference: it is Valid."""
		if not self._check_live(state, ref_place, span):
			return False
		rs = state.get_ref(ref_place)
		if rs is None or rs.is_valid:
			return True
		cause = rs.cause
		cause_span = cause.span if cause is not None else None
		target = cause.place if cause is not None and cause.place is not None else rs.target
		if cause is not None and cause.reason is InvalidationReason.SCOPE_EXIT:
			self._report(
				ViolationKind.DANGLING_REFERENCE,
				f"reference '{ref_place}' outlives '{target}'",
				place=ref_place,
				span=span,
				cause_span=cause_span,
				notes=[f"'{target}' went out of scope on line {self._line(cause_span)}"],
			)
		else:
			notes = []
			if cause is not None:
				notes.append(f"'{ref_place}' was invalidated on line {self._line(cause_span)} ({self._reason_text(cause)})")
			self._report(
				ViolationKind.USE_OF_INVALID_REFERENCE,
				f"use of invalid reference '{ref_place}'" + (f" to '{target}'" if target is not None else ""),
				place=ref_place,
				span=span,
				cause_span=cause_span,
				notes=notes,
			)
		return False

	@staticmethod
	def _reason_text(cause: Invalidation) -> str:
		where = f"'{cause.place}'" if cause.place is not None else "its target"
		if cause.reason is InvalidationReason.CONFLICTING_BORROW:
			return f"a conflicting reference to {where} was created"
		if cause.reason is InvalidationReason.OVERWRITE:
			return f"{where} was overwritten"
		if cause.reason is InvalidationReason.MOVE:
			return f"{where} was moved"
		if cause.reason is InvalidationReason.COPIED:
			return "it was copied into another reference"
		return f"{where} went out of scope"

	# -- state transitions --------------------------------------------------------

	def _invalidate_overlapping(
		self,
		state: FlowState,
		place: Place,
		reason: InvalidationReason,
		span: Span,
		*,
		exclude: Optional[Place] = None,
		only_mutable: bool = False,
		whole_aggregate: bool = False,
	) -> List[Place]:
		"""
		Invalidate every Valid reference (other than `exclude`) whose target
		overlaps `place`. With `whole_aggregate`, any reference into the
		variable `place` belongs to counts (borrowing a field borrows the struct).
		"""
		reach = place.root if whole_aggregate else place
		hit: List[Place] = []
		for ref_place, rs in state.valid_refs():
			if ref_place == exclude:
				continue
			if ref_place.base.kind is PlaceKind.UNKNOWN:
				# Pointers kept in memory we do not model stay valid.
				continue
			if only_mutable and rs.kind is not RefKind.MUTABLE:
				continue
			if any(places_overlap(t, reach) for t in rs.targets):
				state.set_ref(ref_place, rs.invalidated(Invalidation(reason, span, place)))
				hit.append(ref_place)
				self._trace("Invalidated reference '%s' to '%s' on line %s.", ref_place, place, self._line(span))
		return hit

	def _move_place(self, state: FlowState, place: Place, span: Span) -> Optional[Place]:
		"""
		Consume an owner-typed place by value. A value behind a reference cannot
		be moved: that is reported and the pointee stays Live. Returns the moved
		place (None when nothing moved).
		"""
		if place.has_deref():
			targets = self._collapse(state, place, span)
			for target in targets:
				self._check_live(state, target, span)
			if targets:
				self._report(
					ViolationKind.MOVE_OUT_OF_REFERENCE,
					f"cannot move non-Copy value '{place}' out from behind a reference",
					place=place,
					span=span,
				)
			return None
		self._places.intern(place)
		if not self._check_live(state, place, span):
			return None
		self._invalidate_overlapping(state, place, InvalidationReason.MOVE, span)
		state.set(place, OwnershipState.MOVED, at=span)
		for desc in self._places.descendants(place):
			state.set(desc, OwnershipState.MOVED, at=span)
		self._trace("Killed '%s' on line %s.", place, self._line(span))
		return place

	def _revive(self, state: FlowState, place: Place, span: Span) -> None:
		"""A whole fresh value lands in `place`: it and all its fields are Live again."""
		self._places.intern(place)
		state.set(place, OwnershipState.LIVE)
		for desc in self._places.descendants(place):
			state.set(desc, OwnershipState.LIVE)
		for ref_place in [p for p in state.refs if place.is_prefix_of(p) and p != place]:
			state.drop_ref(ref_place)
		self._trace("Made live '%s' on line %s.", place, self._line(span))

	def _transfer_field_refs(self, state: FlowState, src: Place, dest: Place) -> None:
		"""Moving an aggregate moves the references stored in its fields along with it."""
		for ref_place, rs in list(state.refs.items()):
			if ref_place != src and src.is_prefix_of(ref_place):
				moved_to = dest.with_projections(ref_place.projections[len(src.projections) :])
				self._places.intern(moved_to)
				state.set_ref(moved_to, rs)

	def _create_borrow(
		self,
		state: FlowState,
		subject: I.Expr,
		kind: RefKind,
		span: Span,
		*,
		holder: Optional[Place],
	) -> Optional[Tuple[FrozenSet[Place], int]]:
		"""
		Take the address of `subject` with the given kind on behalf of `holder`
		(None for the anonymous reference handed to a callee).

		Precondition: the borrowed place is Live. Effect: conflicting references
		are invalidated (const: other mutable ones; mutable: all others).
		Returns the targets and their lifetime tag.
		"""
		place = place_from_expr(_strip_casts(subject), base_lookup=self._base_lookup)
		if place is None:
			self._visit_expr(state, subject)
			return None
		targets = self._collapse(state, place, span)
		for target in targets:
			self._check_live(state, target, span)
		if self.config.mode is AnalysisMode.STRICT:
			self._report_creation_conflicts(state, targets, kind, span, holder)
		for target in targets:
			self._invalidate_overlapping(
				state,
				target,
				InvalidationReason.CONFLICTING_BORROW,
				span,
				exclude=holder,
				only_mutable=kind is RefKind.CONST,
				whole_aggregate=True,
			)
		lifetime = max(state.depth_of(t.base) for t in targets) if targets else 0
		self._trace(
			"Created %s reference%s to %s on line %s.",
			_kind_word(kind),
			f" '{holder}'" if holder is not None else "",
			", ".join(f"'{t}'" for t in targets),
			self._line(span),
		)
		return frozenset(targets), lifetime

	def _report_creation_conflicts(
		self,
		state: FlowState,
		targets: List[Place],
		kind: RefKind,
		span: Span,
		holder: Optional[Place],
	) -> None:
		for ref_place, rs in state.valid_refs():
			if ref_place == holder:
				continue
			if kind is RefKind.CONST and rs.kind is not RefKind.MUTABLE:
				continue
			for target in targets:
				if any(places_overlap(t, target.root) for t in rs.targets):
					self._report(
						ViolationKind.DOUBLE_MUTABLE_BORROW_AT_CREATION,
						f"cannot take a {_kind_word(kind)} reference to '{target}' while "
						f"{_kind_word(rs.kind)} reference '{ref_place}' is live",
						place=target,
						span=span,
					)
					break

	# -- expressions --------------------------------------------------------------

	def _read_place(self, state: FlowState, place: Place, span: Span) -> List[Place]:
		targets = self._collapse(state, place, span)
		for target in targets:
			self._check_live(state, target, span)
		return targets

	def _visit_expr(self, state: FlowState, expr: I.Expr) -> None:
		"""
		Evaluate an expression in value position: places are read (not moved),
		dereferences validate their reference, calls apply their effects.
		"""
		span = self._span_of(expr)
		if isinstance(expr, (I.Var, I.Field, I.Deref, I.Index)):
			place = place_from_expr(expr, base_lookup=self._base_lookup)
			if place is not None:
				self._read_place(state, place, span)
			elif isinstance(expr, (I.Field, I.Deref, I.Index)):
				self._visit_expr(state, expr.subject)
			if isinstance(expr, I.Index):
				self._visit_expr(state, expr.index)
			return
		if isinstance(expr, I.AddrOf):
			place = place_from_expr(_strip_casts(expr.subject), base_lookup=self._base_lookup)
			if place is None:
				self._visit_expr(state, expr.subject)
			else:
				self._read_place(state, place, span)
			return
		if isinstance(expr, I.Call):
			self._visit_call(state, expr)
			return
		if isinstance(expr, I.StructLit):
			for value in expr.values:
				self._consume_value(state, value)
			return
		if isinstance(expr, I.Unary):
			self._visit_expr(state, expr.operand)
			return
		if isinstance(expr, I.Binary):
			self._visit_expr(state, expr.left)
			self._visit_expr(state, expr.right)
			return
		if isinstance(expr, I.Ternary):
			self._visit_expr(state, expr.cond)
			self._visit_expr(state, expr.then_expr)
			self._visit_expr(state, expr.else_expr)
			return
		if isinstance(expr, I.Cast):
			self._visit_expr(state, expr.expr)
			return
		# Literals and sizeof need no action.

	def _consume_value(self, state: FlowState, expr: I.Expr) -> Optional[Place]:
		"""Evaluate `expr` where its value is transferred (moved) somewhere else."""
		inner = _strip_casts(expr)
		place = place_from_expr(inner, base_lookup=self._base_lookup)
		if place is not None and self._classify_place(place) is TypeClass.OWNER:
			return self._move_place(state, place, self._span_of(expr))
		self._visit_expr(state, expr)
		return None

	def _visit_call(self, state: FlowState, call: I.Call) -> None:
		signature = self.signatures.get(call.callee) if call.callee is not None else None
		effects = resolve_call_effects(
			signature,
			call.args,
			type_table=self.type_table,
			arg_type=self._expr_type,
		)
		for eff in effects:
			arg = _strip_casts(eff.arg)
			span = I.expr_span(eff.arg, self._span_of(call))
			if eff.kind in (ArgEffectKind.BORROW_CONST, ArgEffectKind.BORROW_MUT):
				kind = RefKind.CONST if eff.kind is ArgEffectKind.BORROW_CONST else RefKind.MUTABLE
				if not isinstance(arg, I.AddrOf):
					raise MalformedInput(f"borrowed argument of '{call.callee}' is not an address-of", loc=span)
				self._create_borrow(state, arg.subject, kind, span, holder=None)
			elif eff.kind is ArgEffectKind.MOVE:
				self._consume_value(state, arg)
			elif eff.kind is ArgEffectKind.USE_REF:
				place = place_from_expr(arg, base_lookup=self._base_lookup)
				if place is None:
					self._visit_expr(state, arg)
					continue
				for ref_place in self._collapse(state, place, span):
					self._check_ref_use(state, ref_place, span)
			else:
				self._visit_expr(state, arg)

	# -- statements ---------------------------------------------------------------

	def _transfer_declare(self, state: FlowState, stmt: I.Declare) -> None:
		decl = self._decl(stmt.binding_id, loc=stmt.span)
		base = self._base_for(stmt.binding_id)
		state.forget([base])
		state.declare(base)
		place = Place(base)
		self._places.intern(place)
		ty_class = self.type_table.classify(decl.ty)
		if stmt.init is None:
			if decl.is_param and ty_class is TypeClass.REFERENCE:
				self._ref_state_for(state, place)
			elif ty_class is TypeClass.OWNER:
				state.set(place, OwnershipState.LIVE)
			return
		self._bind(state, place, decl.ty, stmt.init, stmt.span)

	def _transfer_assign(self, state: FlowState, stmt: I.Assign) -> None:
		target = _strip_casts(stmt.target)
		tplace = place_from_expr(target, base_lookup=self._base_lookup)
		if tplace is None:
			raise MalformedInput("assignment target is not an lvalue", loc=stmt.span)
		ty = self._place_type(tplace)
		if tplace.has_deref():
			# Writing through a reference: the reference is used, its target is
			# written. Other references to the target are not disturbed.
			self._bind_through(state, tplace, ty, stmt.value, stmt.span)
			return
		if tplace.parent is not None:
			moved = state.moved_ancestor(tplace.parent)
			if moved is not None:
				self._check_live(state, tplace, I.expr_span(stmt.target, stmt.span))
		self._bind(state, tplace, ty, stmt.value, stmt.span, overwrite=True)

	def _bind_through(self, state: FlowState, tplace: Place, ty: Optional[TypeId], value: I.Expr, span: Span) -> None:
		dests = self._collapse(state, tplace, span)
		if not dests:
			self._visit_expr(state, value)
			return
		first, rest = dests[0], dests[1:]
		self._bind(state, first, ty, value, span)
		for dest in rest:
			rs = state.get_ref(first)
			if rs is not None:
				state.set_ref(dest, rs)
			elif self.type_table.is_owner(ty):
				self._revive(state, dest, span)

	def _bind(
		self,
		state: FlowState,
		dest: Place,
		ty: Optional[TypeId],
		value: I.Expr,
		span: Span,
		*,
		overwrite: bool = False,
	) -> None:
		"""
		Store the value of `value` into `dest` (a collapsed place), applying the
		rule for the destination's type class. With `overwrite`, `dest` held a
		value before and every reference to it is invalidated.
		"""
		ty_class = self.type_table.classify(ty)
		if ty_class is TypeClass.REFERENCE:
			new_state = self._eval_reference(state, dest, ty, value, span)
			if overwrite:
				self._invalidate_overlapping(state, dest, InvalidationReason.OVERWRITE, span, exclude=dest)
			if new_state is None:
				state.drop_ref(dest)
			else:
				state.set_ref(dest, new_state)
			return
		if ty_class is TypeClass.OWNER:
			moved_from = self._consume_value(state, value)
			if overwrite:
				self._invalidate_overlapping(state, dest, InvalidationReason.OVERWRITE, span)
			self._revive(state, dest, span)
			if moved_from is not None and moved_from != dest:
				self._transfer_field_refs(state, moved_from, dest)
			return
		self._visit_expr(state, value)
		if overwrite:
			self._invalidate_overlapping(state, dest, InvalidationReason.OVERWRITE, span)

	def _eval_reference(
		self,
		state: FlowState,
		dest: Place,
		ty: Optional[TypeId],
		value: I.Expr,
		span: Span,
	) -> Optional[ReferenceState]:
		"""
		Evaluate a value stored into a reference and return the reference's new
		state (None: no tracked state, e.g. NULL or an uninitialised pointer).
		"""
		kind = self._ref_kind_for(ty)
		inner = _strip_casts(value)
		if isinstance(inner, I.AddrOf):
			created = self._create_borrow(state, inner.subject, kind, span, holder=dest)
			if created is None:
				return None
			targets, lifetime = created
			return ReferenceState(Validity.VALID, kind, targets, lifetime)
		src = place_from_expr(inner, base_lookup=self._base_lookup)
		if src is not None and self._classify_place(src) is TypeClass.REFERENCE:
			return self._copy_reference(state, dest, kind, src, I.expr_span(value, span))
		self._visit_expr(state, value)
		if isinstance(inner, I.Call) or (src is not None and self._classify_place(src) is not TypeClass.COPY):
			return ReferenceState(Validity.VALID, kind, frozenset({self._unknown_pointee(dest)}))
		return None

	def _copy_reference(
		self,
		state: FlowState,
		dest: Place,
		kind: RefKind,
		src: Place,
		span: Span,
	) -> Optional[ReferenceState]:
		"""
		`dest = src` where both are references. A mutable reference cannot be
		duplicated: copying it consumes the original. A mutable copy of anything
		also invalidates the other references to the same target.
		"""
		result: Optional[ReferenceState] = None
		for src_place in self._collapse(state, src, span):
			if src_place == dest:
				rs = state.get_ref(dest)
				result = rs if result is None or rs is None else result
				continue
			if not self._check_ref_use(state, src_place, span):
				src_state = state.get_ref(src_place)
				if src_state is not None:
					result = src_state
				continue
			src_state = self._ref_state_for(state, src_place)
			if src_place.base.kind is not PlaceKind.UNKNOWN and (src_state.kind is RefKind.MUTABLE or kind is RefKind.MUTABLE):
				state.set_ref(src_place, src_state.invalidated(Invalidation(InvalidationReason.COPIED, span, src_state.target)))
				self._trace("Invalidated reference '%s' (copied into '%s') on line %s.", src_place, dest, self._line(span))
			for target in sorted(src_state.targets, key=lambda p: p.sort_key()):
				self._invalidate_overlapping(
					state,
					target,
					InvalidationReason.CONFLICTING_BORROW,
					span,
					exclude=dest,
					only_mutable=kind is RefKind.CONST,
				)
			copied = ReferenceState(Validity.VALID, kind, src_state.targets, src_state.lifetime)
			result = copied if result is None else ReferenceState(
				Validity.VALID,
				kind,
				result.targets | copied.targets,
				max(result.lifetime, copied.lifetime),
			)
		return result

	def _transfer_return(self, state: FlowState, stmt: I.Return) -> None:
		if stmt.value is None:
			return
		value = _strip_casts(stmt.value)
		span = I.expr_span(stmt.value, stmt.span)
		if isinstance(value, I.AddrOf):
			place = place_from_expr(_strip_casts(value.subject), base_lookup=self._base_lookup)
			if place is None:
				self._visit_expr(state, value)
				return
			for target in self._read_place(state, place, span):
				if self._is_function_local(state, target):
					self._report(
						ViolationKind.DANGLING_REFERENCE,
						f"returning the address of local '{target}'",
						place=target,
						span=span,
					)
			return
		place = place_from_expr(value, base_lookup=self._base_lookup)
		if place is not None and self._classify_place(place) is TypeClass.REFERENCE:
			for ref_place in self._collapse(state, place, span):
				if not self._check_ref_use(state, ref_place, span):
					continue
				rs = self._ref_state_for(state, ref_place)
				for target in sorted(rs.targets, key=lambda p: p.sort_key()):
					if self._is_function_local(state, target):
						self._report(
							ViolationKind.DANGLING_REFERENCE,
							f"returning reference '{ref_place}' to local '{target}'",
							place=ref_place,
							span=span,
						)
			return
		self._consume_value(state, stmt.value)

	def _transfer_scope_exit(self, state: FlowState, stmt: I.ScopeExit) -> None:
		if not state.frames or state.frames[-1].frame_id != stmt.frame_id:
			open_id = state.frames[-1].frame_id if state.frames else None
			raise MalformedInput(f"scope exit {stmt.frame_id} does not match open frame {open_id}", loc=stmt.span)
		frame = state.frames[-1]
		for ref_place, rs in state.valid_refs():
			if ref_place.base in frame.bases or rs.lifetime < frame.depth:
				continue
			dying = sorted((t for t in rs.targets if t.base in frame.bases), key=lambda p: p.sort_key())
			if dying:
				state.set_ref(ref_place, rs.invalidated(Invalidation(InvalidationReason.SCOPE_EXIT, stmt.span, dying[0])))
				self._trace("Reference '%s' to '%s' left dangling on line %s.", ref_place, dying[0], self._line(stmt.span))
		state.forget(frame.bases)
		state.pop_frame()


def check_functions(
	cfgs: Iterable[FunctionCfg],
	*,
	type_table: TypeTable,
	signatures: Mapping[str, FnSignature],
	config: Optional[CheckerConfig] = None,
) -> List[Diagnostic]:
	"""
	Borrow-check several functions, each with its own checker instance (state
	never outlives one function body).
	"""
	config = config or CheckerConfig()
	diagnostics: List[Diagnostic] = []
	for cfg in cfgs:
		if not config.wants(cfg.name):
			continue
		checker = BorrowChecker(type_table=type_table, signatures=signatures, config=config)
		diagnostics.extend(checker.check_function(cfg))
	return diagnostics


__all__ = ["BorrowChecker", "MalformedInput", "check_functions"]
