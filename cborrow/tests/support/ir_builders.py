# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
# author: Sławomir Liszniański; created: 2026-10-18
"""
Small builders for hand-written borrow-checker inputs.

Tests describe a function body with structured IR (`If`/`While`/`Block`) and
let `build_cfg` produce the CFG, the same way the C front-end does. Every
statement helper takes the source line it pretends to come from so tests can
assert where diagnostics point.
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional

from cborrow import ir as I
from cborrow.borrow_checker_pass import BorrowChecker
from cborrow.call_effects import FnSignature
from cborrow.cfg import FunctionCfg, build_cfg
from cborrow.config import AnalysisMode, CheckerConfig
from cborrow.core.diagnostics import Diagnostic
from cborrow.core.span import Span
from cborrow.core.types_core import TypeId, TypeTable


def at(line: Optional[int]) -> Span:
	if line is None:
		return Span()
	return Span(file="test.c", line=line, column=1)


def struct_type(table: TypeTable, name: str, fields: Mapping[str, TypeId]) -> TypeId:
	ty = table.ensure_struct(name)
	table.set_struct_fields(ty, list(fields.items()))
	return ty


class FnBuilder:
	"""Collects declarations for one function; `v(name)` resolves to the latest binding of `name`."""

	def __init__(self, table: TypeTable, name: str = "f") -> None:
		self.table = table
		self.name = name
		self.decls: Dict[int, I.VarDecl] = {}
		self.ids: Dict[str, int] = {}
		self.params: List[int] = []
		self.globals: List[int] = []
		self._next = 1

	def _register(self, name: str, ty: TypeId, *, is_param: bool = False, is_global: bool = False) -> int:
		bid = self._next
		self._next += 1
		self.decls[bid] = I.VarDecl(bid, name, ty, is_param=is_param, is_global=is_global)
		self.ids[name] = bid
		return bid

	def param(self, name: str, ty: TypeId) -> None:
		self.params.append(self._register(name, ty, is_param=True))

	def global_var(self, name: str, ty: TypeId) -> None:
		self.globals.append(self._register(name, ty, is_global=True))

	def let(self, name: str, ty: TypeId, init: Optional[I.Expr] = None, line: Optional[int] = None) -> I.Declare:
		return I.Declare(self._register(name, ty), init=init, span=at(line))

	def v(self, name: str, line: Optional[int] = None) -> I.Var:
		return I.Var(name, self.ids[name], span=at(line))

	def cfg(self, statements: List[I.Stmt], end_line: Optional[int] = None) -> FunctionCfg:
		body = I.Block(statements=list(statements), span=at(1), end_span=at(end_line))
		return build_cfg(
			self.name,
			body,
			decls=self.decls,
			params=self.params,
			globals=self.globals,
		)


# Expressions

def addr(subject: I.Expr) -> I.AddrOf:
	return I.AddrOf(subject, span=subject.span)


def deref(subject: I.Expr) -> I.Deref:
	return I.Deref(subject, span=subject.span)


def fld(subject: I.Expr, name: str) -> I.Field:
	return I.Field(subject, name, span=subject.span)


def arrow(subject: I.Expr, name: str) -> I.Field:
	return I.Field(subject, name, through_pointer=True, span=subject.span)


def lit(value: object = 0) -> I.Literal:
	return I.Literal(value)


def null() -> I.Literal:
	return I.Literal(0, is_null=True)


def call(callee: Optional[str], *args: I.Expr, ty: Optional[TypeId] = None, line: Optional[int] = None) -> I.Call:
	return I.Call(callee, list(args), ty=ty, span=at(line))


# Statements

def assign(target: I.Expr, value: I.Expr, line: Optional[int] = None) -> I.Assign:
	return I.Assign(target, value, span=at(line))


def ev(expr: I.Expr, line: Optional[int] = None) -> I.Eval:
	return I.Eval(expr, span=at(line))


def ret(value: Optional[I.Expr] = None, line: Optional[int] = None) -> I.Return:
	return I.Return(value, span=at(line))


def block(*statements: I.Stmt, line: Optional[int] = None, end_line: Optional[int] = None) -> I.Block:
	return I.Block(statements=list(statements), span=at(line), end_span=at(end_line))


def if_(cond: I.Expr, then_block: I.Block, else_block: Optional[I.Block] = None) -> I.If:
	return I.If(cond, then_block, else_block)


def while_(cond: Optional[I.Expr], body: I.Block) -> I.While:
	return I.While(cond, body)


# Running the checker

def check(
	builder: FnBuilder,
	statements: List[I.Stmt],
	*,
	signatures: Optional[Mapping[str, FnSignature]] = None,
	strict: bool = False,
	end_line: Optional[int] = None,
) -> List[Diagnostic]:
	config = CheckerConfig(mode=AnalysisMode.STRICT if strict else AnalysisMode.SILENT)
	checker = BorrowChecker(type_table=builder.table, signatures=dict(signatures or {}), config=config)
	return checker.check_function(builder.cfg(statements, end_line=end_line))


def codes(diags: List[Diagnostic]) -> List[str]:
	return [d.code for d in diags]
