# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
# author: Sławomir Liszniański; created: 2026-10-18
"""
Surface AST for the C subset accepted by the front-end.

The tree mirrors the source closely (declarators are kept as written, types
are unresolved names); `cborrow.frontend.lower` resolves names and types and
produces the borrow checker's IR.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Union


@dataclass(frozen=True)
class Located:
	line: int
	column: int
	end_line: Optional[int] = None
	end_column: Optional[int] = None


# Types and declarators

@dataclass
class Enumerator:
	name: str
	value: Optional["Expr"]
	loc: Located


@dataclass
class TypeSpec:
	"""
	Declaration specifiers of one declaration.

	`kind` is "builtin" (name like "unsigned long"), "typedef", "struct" or
	"enum". A struct/enum spec carrying a body defines the type in place.
	"""

	kind: str
	name: Optional[str]
	loc: Located
	is_const: bool = False
	storage: List[str] = field(default_factory=list)
	is_union: bool = False
	fields: Optional[List["FieldDecl"]] = None
	enumerators: Optional[List[Enumerator]] = None


@dataclass
class Param:
	type_spec: TypeSpec
	declarator: "Declarator"
	loc: Located


@dataclass
class Declarator:
	"""
	One declarator. `pointers` has an entry per `*`, outermost (closest to the
	type) first, True when that pointer itself is const-qualified.
	`params` is None unless the declarator declares a function.
	"""

	name: Optional[str]
	loc: Located
	pointers: List[bool] = field(default_factory=list)
	array_dims: int = 0
	params: Optional[List[Param]] = None
	variadic: bool = False
	function_pointer: bool = False


@dataclass
class FieldDecl:
	type_spec: TypeSpec
	declarators: List[Declarator]
	loc: Located


@dataclass
class TypeName:
	"""Abstract type as written in casts and `sizeof`."""

	type_spec: TypeSpec
	pointers: List[bool] = field(default_factory=list)


# Expressions

class Expr:
	loc: Located


@dataclass
class Name(Expr):
	ident: str
	loc: Located


@dataclass
class Number(Expr):
	text: str
	loc: Located


@dataclass
class CharLit(Expr):
	text: str
	loc: Located


@dataclass
class StringLit(Expr):
	value: str
	loc: Located


@dataclass
class FieldAccess(Expr):
	subject: Expr
	name: str
	arrow: bool
	loc: Located


@dataclass
class IndexExpr(Expr):
	subject: Expr
	index: Expr
	loc: Located


@dataclass
class CallExpr(Expr):
	func: Expr
	args: List[Expr]
	loc: Located


@dataclass
class UnaryExpr(Expr):
	"""Prefix operators (`& * ! - + ~`) and `++`/`--` in either position."""

	op: str
	operand: Expr
	loc: Located
	postfix: bool = False


@dataclass
class BinaryExpr(Expr):
	op: str
	left: Expr
	right: Expr
	loc: Located


@dataclass
class TernaryExpr(Expr):
	cond: Expr
	then_expr: Expr
	else_expr: Expr
	loc: Located


@dataclass
class AssignExpr(Expr):
	"""`target op value`; op is "=" or a compound operator such as "+="."""

	op: str
	target: Expr
	value: Expr
	loc: Located


@dataclass
class CastExpr(Expr):
	type_name: TypeName
	expr: Expr
	loc: Located


@dataclass
class SizeOfExpr(Expr):
	loc: Located


@dataclass
class InitItem:
	value: Expr
	field_name: Optional[str] = None


@dataclass
class InitList(Expr):
	items: List[InitItem]
	loc: Located


@dataclass
class CompoundLiteral(Expr):
	type_name: TypeName
	init: InitList
	loc: Located


# Declarations

@dataclass
class InitDeclarator:
	declarator: Declarator
	init: Optional[Expr] = None


@dataclass
class VarDeclaration:
	"""A declaration statement; may declare nothing (`struct X {...};`)."""

	type_spec: TypeSpec
	items: List[InitDeclarator]
	loc: Located


@dataclass
class TypedefDecl:
	type_spec: TypeSpec
	declarators: List[Declarator]
	loc: Located


# Statements

class Stmt:
	loc: Located


@dataclass
class Compound(Stmt):
	items: List[Union[Stmt, VarDeclaration, TypedefDecl]]
	loc: Located
	end_loc: Optional[Located] = None


@dataclass
class ExprStmt(Stmt):
	expr: Expr
	loc: Located


@dataclass
class IfStmt(Stmt):
	cond: Expr
	then_stmt: Stmt
	else_stmt: Optional[Stmt]
	loc: Located


@dataclass
class WhileStmt(Stmt):
	cond: Expr
	body: Stmt
	loc: Located


@dataclass
class DoWhileStmt(Stmt):
	body: Stmt
	cond: Expr
	loc: Located


@dataclass
class ForStmt(Stmt):
	init: Optional[Union[VarDeclaration, Expr]]
	cond: Optional[Expr]
	step: Optional[Expr]
	body: Stmt
	loc: Located


@dataclass
class ReturnStmt(Stmt):
	value: Optional[Expr]
	loc: Located


@dataclass
class BreakStmt(Stmt):
	loc: Located


@dataclass
class ContinueStmt(Stmt):
	loc: Located


# Top level

@dataclass
class FunctionDef:
	type_spec: TypeSpec
	declarator: Declarator
	body: Compound
	loc: Located


@dataclass
class TranslationUnit:
	items: List[Union[FunctionDef, VarDeclaration, TypedefDecl]] = field(default_factory=list)
	filename: Optional[str] = None
