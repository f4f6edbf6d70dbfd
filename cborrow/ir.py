# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
# author: Sławomir Liszniański; created: 2026-10-18
"""
Typed IR consumed by the borrow checker.

The statement vocabulary is closed: declarations, assignments, expression
statements (calls), returns and scope markers live in basic blocks; `If`,
`While`, `Block`, `Break` and `Continue` only exist in structured bodies and
are removed when a body is lowered to a CFG (`cborrow.cfg.build_cfg`).

Variables carry the binding id assigned by name resolution; the function's
declaration table (`VarDecl`) maps binding ids to names, types and storage.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from cborrow.core.span import Span
from cborrow.core.types_core import TypeId


# Base node kinds

class Node:
	"""Base class for all IR nodes."""
	pass


class Expr(Node):
	"""Base class for all IR expressions."""
	pass


class Stmt(Node):
	"""Base class for all IR statements."""
	pass


# Expressions

@dataclass
class Var(Expr):
	name: str
	binding_id: Optional[int] = None
	span: Span = field(default_factory=Span)


@dataclass
class Field(Expr):
	"""Field access; `through_pointer` marks `p->name` (an implicit deref of `p`)."""

	subject: Expr
	name: str
	through_pointer: bool = False
	span: Span = field(default_factory=Span)


@dataclass
class Deref(Expr):
	subject: Expr
	span: Span = field(default_factory=Span)


@dataclass
class AddrOf(Expr):
	subject: Expr
	span: Span = field(default_factory=Span)


@dataclass
class Index(Expr):
	subject: Expr
	index: Expr
	span: Span = field(default_factory=Span)


@dataclass
class Literal(Expr):
	"""Numeric/char/string literal; `is_null` marks NULL / 0 used as a pointer."""

	value: object
	is_null: bool = False
	span: Span = field(default_factory=Span)


@dataclass
class Call(Expr):
	"""
	Function call. `callee` is None for indirect calls (function pointers), whose
	signature is always unknown; `ty` is the return type when known.
	"""

	callee: Optional[str]
	args: List[Expr] = field(default_factory=list)
	ty: Optional[TypeId] = None
	span: Span = field(default_factory=Span)


@dataclass
class StructLit(Expr):
	"""Brace initializer / compound literal: produces a fresh aggregate."""

	values: List[Expr] = field(default_factory=list)
	field_names: List[Optional[str]] = field(default_factory=list)
	span: Span = field(default_factory=Span)


@dataclass
class Unary(Expr):
	op: str
	operand: Expr
	span: Span = field(default_factory=Span)


@dataclass
class Binary(Expr):
	op: str
	left: Expr
	right: Expr
	span: Span = field(default_factory=Span)


@dataclass
class Ternary(Expr):
	cond: Expr
	then_expr: Expr
	else_expr: Expr
	span: Span = field(default_factory=Span)


@dataclass
class Cast(Expr):
	expr: Expr
	ty: Optional[TypeId] = None
	span: Span = field(default_factory=Span)


@dataclass
class SizeOf(Expr):
	"""`sizeof`: its operand is never evaluated."""

	span: Span = field(default_factory=Span)


# Declarations

@dataclass
class VarDecl:
	"""Resolved declaration of a variable (local, parameter or global)."""

	binding_id: int
	name: str
	ty: TypeId
	is_param: bool = False
	is_global: bool = False
	span: Span = field(default_factory=Span)


# Statements that survive CFG lowering

@dataclass
class Declare(Stmt):
	"""Declaration of `binding_id` in the current scope frame, with an optional initializer."""

	binding_id: int
	init: Optional[Expr] = None
	span: Span = field(default_factory=Span)


@dataclass
class Assign(Stmt):
	"""
	`target = value`. The shape of the operands tells the pass which rule
	applies: address-of on the right, a field or a dereference on the left, etc.
	"""

	target: Expr
	value: Expr
	span: Span = field(default_factory=Span)


@dataclass
class Eval(Stmt):
	"""Expression statement (typically a call)."""

	expr: Expr
	span: Span = field(default_factory=Span)


@dataclass
class Return(Stmt):
	value: Optional[Expr] = None
	span: Span = field(default_factory=Span)


@dataclass
class ScopeEnter(Stmt):
	frame_id: int
	span: Span = field(default_factory=Span)


@dataclass
class ScopeExit(Stmt):
	frame_id: int
	span: Span = field(default_factory=Span)


# Structured statements (removed by CFG lowering)

@dataclass
class Block(Stmt):
	"""Compound statement; introduces a scope frame."""

	statements: List[Stmt] = field(default_factory=list)
	span: Span = field(default_factory=Span)
	end_span: Span = field(default_factory=Span)


@dataclass
class If(Stmt):
	cond: Expr
	then_block: Block
	else_block: Optional[Block] = None
	span: Span = field(default_factory=Span)


@dataclass
class While(Stmt):
	"""
	Loop. `step` runs after the body and on `continue` (the third clause of a
	`for`); `test_first=False` models `do ... while`.
	"""

	cond: Optional[Expr]
	body: Block
	step: List[Stmt] = field(default_factory=list)
	test_first: bool = True
	span: Span = field(default_factory=Span)


@dataclass
class Break(Stmt):
	span: Span = field(default_factory=Span)


@dataclass
class Continue(Stmt):
	span: Span = field(default_factory=Span)


def expr_span(expr: Optional[Expr], fallback: Optional[Span] = None) -> Span:
	"""Best-effort span of an expression; `fallback` (or Span()) when it has no line."""
	span = getattr(expr, "span", None) if expr is not None else None
	if span is None or span.line is None:
		return fallback or Span()
	return span


__all__ = [
	"Node", "Expr", "Stmt",
	"Var", "Field", "Deref", "AddrOf", "Index", "Literal", "Call", "StructLit",
	"Unary", "Binary", "Ternary", "Cast", "SizeOf",
	"VarDecl",
	"Declare", "Assign", "Eval", "Return", "ScopeEnter", "ScopeExit",
	"Block", "If", "While", "Break", "Continue",
	"expr_span",
]
