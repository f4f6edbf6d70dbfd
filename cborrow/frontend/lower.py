# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
# author: Sławomir Liszniański; created: 2026-10-18
"""
Lower a parsed translation unit into the borrow checker's inputs.

This is where C's names and types get resolved:

* `struct`/`union` definitions become Owner types with field layouts, typedefs
  are aliases, pointers become references (`const T *` is a const reference).
* Prototypes and definitions become `FnSignature`s, which drive call effects.
* Function bodies become structured IR (`cborrow.ir`) and then a CFG.

Identifiers the unit never declares (macros, kernel globals, `EBUSY`) are
declared on first use as globals of unknown (Copy) type; calls to undeclared
functions are calls to unknown callees. `NULL` is the null pointer literal.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from cborrow import ir as I
from cborrow.call_effects import FnSignature
from cborrow.cfg import CfgError, FunctionCfg, build_cfg
from cborrow.core.diagnostics import Diagnostic, ViolationKind
from cborrow.core.span import Span
from cborrow.core.types_core import TypeId, TypeTable

from . import ast as A

logger = logging.getLogger(__name__)


class LoweringError(ValueError):
	"""A construct the front-end cannot turn into IR (reported in the "lower" phase)."""

	def __init__(self, message: str, *, loc: object | None = None) -> None:
		super().__init__(message)
		self.loc = loc


@dataclass
class LoweredProgram:
	"""
	Everything the borrow checker needs about one translation unit.

	`errors` holds lowering diagnostics of function bodies that could not be
	lowered; the remaining functions are still analysed.
	"""

	type_table: TypeTable
	signatures: Dict[str, FnSignature] = field(default_factory=dict)
	functions: List[FunctionCfg] = field(default_factory=list)
	globals: Dict[int, I.VarDecl] = field(default_factory=dict)
	errors: List[Diagnostic] = field(default_factory=list)


def lower_translation_unit(unit: A.TranslationUnit, *, type_table: Optional[TypeTable] = None) -> LoweredProgram:
	"""Resolve names/types of `unit` and build one CFG per function definition."""
	return _Lowerer(unit.filename, type_table or TypeTable()).lower(unit)


def _is_lvalue_shape(expr: I.Expr) -> bool:
	if isinstance(expr, I.Cast):
		return _is_lvalue_shape(expr.expr)
	if isinstance(expr, (I.Field, I.Deref, I.Index)):
		return True
	return isinstance(expr, I.Var)


class _Lowerer:
	def __init__(self, filename: Optional[str], type_table: TypeTable) -> None:
		self.filename = filename
		self.types = type_table
		self.typedefs: Dict[str, TypeId] = {}
		self.signatures: Dict[str, FnSignature] = {}
		self.global_decls: Dict[int, I.VarDecl] = {}
		self.globals_by_name: Dict[str, int] = {}
		self._next_binding = 1
		self._spec_types: Dict[int, TypeId] = {}
		self._anon_structs = 0
		# per-function state
		self._scopes: List[Dict[str, int]] = []
		self._fn_decls: Dict[int, I.VarDecl] = {}
		self._return_type: Optional[TypeId] = None

	# -- top level ---------------------------------------------------------------

	def lower(self, unit: A.TranslationUnit) -> LoweredProgram:
		program = LoweredProgram(type_table=self.types)
		definitions: List[A.FunctionDef] = []
		for item in unit.items:
			if isinstance(item, A.FunctionDef):
				self._register_signature(item.type_spec, item.declarator, item.loc, definition=True)
				definitions.append(item)
			elif isinstance(item, A.TypedefDecl):
				self._typedef(item)
			elif isinstance(item, A.VarDeclaration):
				self._global_declaration(item)
		for fn in definitions:
			name = fn.declarator.name or "?"
			try:
				program.functions.append(self._lower_function(fn))
			except (LoweringError, CfgError) as err:
				logger.debug("could not lower function '%s': %s", name, err)
				program.errors.append(
					Diagnostic(
						message=f"cannot analyse '{name}': {err}",
						code=ViolationKind.MALFORMED_INPUT.value,
						phase="lower",
						span=self._span(err.loc),
						function=name,
					)
				)
		program.signatures = dict(self.signatures)
		program.globals = dict(self.global_decls)
		return program

	def _span(self, loc: object | None) -> Span:
		if isinstance(loc, Span):
			return loc
		if not isinstance(loc, A.Located) or not loc.line:
			return Span(file=self.filename)
		return Span(file=self.filename, line=loc.line, column=loc.column)

	def _new_binding(self, name: str, ty: TypeId, loc: A.Located, *, is_param: bool = False, is_global: bool = False) -> int:
		bid = self._next_binding
		self._next_binding += 1
		decl = I.VarDecl(binding_id=bid, name=name, ty=ty, is_param=is_param, is_global=is_global, span=self._span(loc))
		if is_global:
			self.global_decls[bid] = decl
			self.globals_by_name[name] = bid
		else:
			self._fn_decls[bid] = decl
		return bid

	def _global_declaration(self, decl: A.VarDeclaration) -> None:
		self._base_type(decl.type_spec)
		for item in decl.items:
			d = item.declarator
			if d.params is not None and not d.function_pointer:
				self._register_signature(decl.type_spec, d, decl.loc, definition=False)
				continue
			if d.name is None:
				continue
			ty = self._declared_type(decl.type_spec, d)
			existing = self.globals_by_name.get(d.name)
			if existing is not None and self.global_decls[existing].ty == ty:
				continue  # `extern int x;` followed by `int x;`
			self._new_binding(d.name, ty, d.loc, is_global=True)

	def _typedef(self, td: A.TypedefDecl) -> None:
		self._base_type(td.type_spec)
		for d in td.declarators:
			if d.name is None:
				continue
			if d.params is not None and not d.function_pointer:
				self.typedefs[d.name] = self.types.ensure_scalar("function")
				continue
			self.typedefs[d.name] = self._declared_type(td.type_spec, d)

	def _register_signature(self, spec: A.TypeSpec, d: A.Declarator, loc: A.Located, *, definition: bool) -> None:
		if d.name is None:
			return
		return_type = self._declared_type(spec, A.Declarator(name=d.name, loc=d.loc, pointers=list(d.pointers)))
		params = self._param_types(d.params)
		previous = self.signatures.get(d.name)
		if previous is not None and params is None and previous.param_type_ids is not None:
			params = previous.param_type_ids  # `int f();` after a full prototype
		self.signatures[d.name] = FnSignature(
			name=d.name,
			param_type_ids=params,
			return_type_id=return_type,
			variadic=d.variadic,
			loc=self._span(loc),
		)
		if definition:
			logger.debug("registered definition of '%s'", d.name)

	def _param_types(self, params: Optional[List[A.Param]]) -> Optional[List[TypeId]]:
		if not params:
			# `f()` declares nothing about the parameters.
			return None
		if self._is_void_list(params):
			return []
		return [self._declared_type(p.type_spec, p.declarator, is_param=True) for p in params]

	@staticmethod
	def _is_void_list(params: List[A.Param]) -> bool:
		if len(params) != 1:
			return False
		p = params[0]
		return (
			p.type_spec.kind == "builtin"
			and p.type_spec.name == "void"
			and p.declarator.name is None
			and not p.declarator.pointers
		)

	# -- types -------------------------------------------------------------------

	def _base_type(self, spec: A.TypeSpec) -> TypeId:
		cached = self._spec_types.get(id(spec))
		if cached is not None:
			return cached
		if spec.kind == "builtin":
			ty = self.types.ensure_void() if spec.name == "void" else self.types.ensure_scalar(spec.name or "int")
		elif spec.kind == "typedef":
			ty = self.typedefs.get(spec.name or "")
			if ty is None:
				# A type name the unit never defines (library/kernel typedef).
				ty = self.types.ensure_scalar(spec.name or "?")
		elif spec.kind == "struct":
			tag = spec.name
			if tag is None:
				self._anon_structs += 1
				tag = f"<anonymous {'union' if spec.is_union else 'struct'} {self._anon_structs}>"
			ty = self.types.ensure_struct(tag)
			self._spec_types[id(spec)] = ty
			if spec.fields is not None:
				layout = []
				for fd in spec.fields:
					self._base_type(fd.type_spec)
					for d in fd.declarators:
						if d.name is not None:
							layout.append((d.name, self._declared_type(fd.type_spec, d)))
				self.types.set_struct_fields(ty, layout)
		else:
			ty = self.types.ensure_int()
			for enumerator in spec.enumerators or []:
				if enumerator.name not in self.globals_by_name:
					self._new_binding(enumerator.name, ty, enumerator.loc, is_global=True)
		self._spec_types[id(spec)] = ty
		return ty

	def _declared_type(self, spec: A.TypeSpec, d: A.Declarator, *, is_param: bool = False) -> TypeId:
		"""
		Type of a declarator: the specifiers' type wrapped in one reference per
		`*`. A pointer's mutability comes from the qualifier of what it points
		to (`const int *` is a const reference, `int *const` a mutable one).
		"""
		if d.function_pointer:
			return self.types.ensure_scalar("function pointer")
		ty = self._base_type(spec)
		pointee_const = spec.is_const
		for ptr_const in d.pointers:
			ty = self.types.new_ref(ty, is_mut=not pointee_const)
			pointee_const = ptr_const
		if is_param and d.array_dims:
			ty = self.types.new_ref(ty, is_mut=not pointee_const)
		return ty

	def _type_name(self, tn: A.TypeName) -> TypeId:
		return self._declared_type(tn.type_spec, A.Declarator(name=None, loc=tn.type_spec.loc, pointers=list(tn.pointers)))

	def _expr_type(self, expr: I.Expr) -> Optional[TypeId]:
		if isinstance(expr, I.Var):
			decl = self._fn_decls.get(expr.binding_id) or self.global_decls.get(expr.binding_id)  # type: ignore[arg-type]
			return decl.ty if decl is not None else None
		if isinstance(expr, I.Field):
			subject_ty = self._expr_type(expr.subject)
			if expr.through_pointer:
				subject_ty = self.types.pointee(subject_ty)
			if not self.types.is_owner(subject_ty):
				return None
			return self.types.field_type(subject_ty, expr.name)  # type: ignore[arg-type]
		if isinstance(expr, I.Deref):
			return self.types.pointee(self._expr_type(expr.subject))
		if isinstance(expr, I.Index):
			subject_ty = self._expr_type(expr.subject)
			return self.types.pointee(subject_ty) if self.types.is_ref(subject_ty) else subject_ty
		if isinstance(expr, I.AddrOf):
			inner = self._expr_type(expr.subject)
			return self.types.new_ref(inner, is_mut=True) if inner is not None else None
		if isinstance(expr, (I.Call, I.Cast)):
			return expr.ty
		return None

	# -- functions ---------------------------------------------------------------

	def _lower_function(self, fn: A.FunctionDef) -> FunctionCfg:
		name = fn.declarator.name or "?"
		self._scopes = [{}]
		self._fn_decls = {}
		signature = self.signatures.get(name)
		self._return_type = signature.return_type_id if signature is not None else None
		param_ids: List[int] = []
		params = fn.declarator.params or []
		if not self._is_void_list(params):
			for idx, p in enumerate(params):
				pname = p.declarator.name or f"<param {idx}>"
				ty = self._declared_type(p.type_spec, p.declarator, is_param=True)
				bid = self._new_binding(pname, ty, p.declarator.loc, is_param=True)
				self._scopes[-1][pname] = bid
				param_ids.append(bid)
		statements = self._lower_items(fn.body.items)
		body = I.Block(
			statements=statements,
			span=self._span(fn.body.loc),
			end_span=self._span(fn.body.end_loc),
		)
		decls = dict(self.global_decls)
		decls.update(self._fn_decls)
		logger.debug("lowered '%s' (%d locals)", name, len(self._fn_decls))
		return build_cfg(
			name,
			body,
			decls=decls,
			params=param_ids,
			globals=sorted(self.global_decls),
			span=self._span(fn.loc),
		)

	def _lower_items(self, items) -> List[I.Stmt]:
		out: List[I.Stmt] = []
		for item in items:
			out.extend(self._lower_stmt(item))
		return out

	def _lower_scoped(self, stmt: A.Stmt) -> I.Block:
		"""Lower a statement as its own lexical scope."""
		self._scopes.append({})
		try:
			if isinstance(stmt, A.Compound):
				return I.Block(
					statements=self._lower_items(stmt.items),
					span=self._span(stmt.loc),
					end_span=self._span(stmt.end_loc or stmt.loc),
				)
			return I.Block(statements=self._lower_stmt(stmt), span=self._span(stmt.loc), end_span=self._span(stmt.loc))
		finally:
			self._scopes.pop()

	def _lower_stmt(self, stmt) -> List[I.Stmt]:
		if isinstance(stmt, A.VarDeclaration):
			return self._local_declaration(stmt)
		if isinstance(stmt, A.TypedefDecl):
			self._typedef(stmt)
			return []
		if isinstance(stmt, A.Compound):
			return [self._lower_scoped(stmt)]
		if isinstance(stmt, A.ExprStmt):
			return self._lower_expr_stmt(stmt.expr)
		if isinstance(stmt, A.IfStmt):
			pre: List[I.Stmt] = []
			cond = self._lower_expr(stmt.cond, pre)
			then_block = self._lower_scoped(stmt.then_stmt)
			else_block = self._lower_scoped(stmt.else_stmt) if stmt.else_stmt is not None else None
			return pre + [I.If(cond=cond, then_block=then_block, else_block=else_block, span=self._span(stmt.loc))]
		if isinstance(stmt, A.WhileStmt):
			pre = []
			cond = self._lower_expr(stmt.cond, pre)
			body = self._lower_scoped(stmt.body)
			return pre + [I.While(cond=cond, body=body, step=list(pre), span=self._span(stmt.loc))]
		if isinstance(stmt, A.DoWhileStmt):
			body = self._lower_scoped(stmt.body)
			pre = []
			cond = self._lower_expr(stmt.cond, pre)
			return [I.While(cond=cond, body=body, step=pre, test_first=False, span=self._span(stmt.loc))]
		if isinstance(stmt, A.ForStmt):
			return [self._lower_for(stmt)]
		if isinstance(stmt, A.ReturnStmt):
			pre = []
			value = self._lower_value(stmt.value, self._return_type, pre) if stmt.value is not None else None
			return pre + [I.Return(value=value, span=self._span(stmt.loc))]
		if isinstance(stmt, A.BreakStmt):
			return [I.Break(span=self._span(stmt.loc))]
		if isinstance(stmt, A.ContinueStmt):
			return [I.Continue(span=self._span(stmt.loc))]
		raise LoweringError(f"unsupported statement {type(stmt).__name__}", loc=getattr(stmt, "loc", None))

	def _lower_for(self, stmt: A.ForStmt) -> I.Block:
		"""`for (init; cond; step) body` is a scope holding `init` and a loop."""
		span = self._span(stmt.loc)
		self._scopes.append({})
		try:
			stmts: List[I.Stmt] = []
			if isinstance(stmt.init, A.VarDeclaration):
				stmts.extend(self._local_declaration(stmt.init))
			elif stmt.init is not None:
				stmts.extend(self._lower_expr_stmt(stmt.init))
			cond_pre: List[I.Stmt] = []
			cond = self._lower_expr(stmt.cond, cond_pre) if stmt.cond is not None else None
			body = self._lower_scoped(stmt.body)
			step = self._lower_expr_stmt(stmt.step) if stmt.step is not None else []
			stmts.extend(cond_pre)
			stmts.append(I.While(cond=cond, body=body, step=step + list(cond_pre), span=span))
			return I.Block(statements=stmts, span=span, end_span=span)
		finally:
			self._scopes.pop()

	def _local_declaration(self, decl: A.VarDeclaration) -> List[I.Stmt]:
		self._base_type(decl.type_spec)
		out: List[I.Stmt] = []
		static = any(s in ("static", "extern") for s in decl.type_spec.storage)
		for item in decl.items:
			d = item.declarator
			if d.params is not None and not d.function_pointer:
				self._register_signature(decl.type_spec, d, decl.loc, definition=False)
				continue
			if d.name is None:
				continue
			ty = self._declared_type(decl.type_spec, d)
			if static:
				# Static and extern locals live as long as globals do.
				self._scopes[-1][d.name] = self._new_binding(d.name, ty, d.loc, is_global=True)
				continue
			pre: List[I.Stmt] = []
			init = self._lower_value(item.init, ty, pre) if item.init is not None else None
			bid = self._new_binding(d.name, ty, d.loc)
			self._scopes[-1][d.name] = bid
			out.extend(pre)
			out.append(I.Declare(binding_id=bid, init=init, span=self._span(d.loc)))
		return out

	# -- expressions -------------------------------------------------------------

	def _lower_expr_stmt(self, expr: A.Expr) -> List[I.Stmt]:
		out: List[I.Stmt] = []
		if isinstance(expr, A.AssignExpr):
			self._lower_assign(expr, out)
		elif isinstance(expr, A.UnaryExpr) and expr.op in ("++", "--"):
			self._lower_incdec(expr, out)
		else:
			value = self._lower_expr(expr, out)
			out.append(I.Eval(expr=value, span=self._span(expr.loc)))
		return out

	def _lower_assign(self, expr: A.AssignExpr, out: List[I.Stmt]) -> I.Expr:
		target = self._lower_expr(expr.target, out)
		if not _is_lvalue_shape(target):
			raise LoweringError("assignment target is not an lvalue", loc=expr.loc)
		value = self._lower_value(expr.value, self._expr_type(target), out)
		span = self._span(expr.loc)
		if expr.op != "=":
			value = I.Binary(op=expr.op[:-1], left=target, right=value, span=span)
		out.append(I.Assign(target=target, value=value, span=span))
		return target

	def _lower_incdec(self, expr: A.UnaryExpr, out: List[I.Stmt]) -> I.Expr:
		target = self._lower_expr(expr.operand, out)
		if not _is_lvalue_shape(target):
			raise LoweringError(f"operand of '{expr.op}' is not an lvalue", loc=expr.loc)
		span = self._span(expr.loc)
		step = I.Binary(op=expr.op[0], left=target, right=I.Literal(1, span=span), span=span)
		out.append(I.Assign(target=target, value=step, span=span))
		return target

	def _lower_value(self, expr: A.Expr, ty: Optional[TypeId], out: List[I.Stmt]) -> I.Expr:
		"""Lower an expression whose value is stored into something of type `ty`."""
		if isinstance(expr, A.InitList):
			return self._lower_init_list(expr, ty, out)
		if isinstance(expr, A.Number) and self.types.is_ref(ty) and expr.text == "0":
			return I.Literal(0, is_null=True, span=self._span(expr.loc))
		return self._lower_expr(expr, out)

	def _lower_init_list(self, init: A.InitList, ty: Optional[TypeId], out: List[I.Stmt]) -> I.StructLit:
		values: List[I.Expr] = []
		names: List[Optional[str]] = []
		layout = self.types.struct_fields(ty) if self.types.is_owner(ty) else ()
		for idx, item in enumerate(init.items):
			field_ty: Optional[TypeId] = None
			if item.field_name is not None:
				field_ty = dict(layout).get(item.field_name)
			elif idx < len(layout):
				field_ty = layout[idx][1]
			values.append(self._lower_value(item.value, field_ty, out))
			names.append(item.field_name)
		return I.StructLit(values=values, field_names=names, span=self._span(init.loc))

	def _lookup(self, ident: str) -> Optional[int]:
		for scope in reversed(self._scopes):
			if ident in scope:
				return scope[ident]
		return self.globals_by_name.get(ident)

	def _lower_expr(self, expr: A.Expr, out: List[I.Stmt]) -> I.Expr:
		"""
		Lower an expression. Side effects nested inside it (assignments,
		`++`/`--`) are emitted into `out` ahead of the statement using it.
		"""
		span = self._span(expr.loc)
		if isinstance(expr, A.Name):
			bid = self._lookup(expr.ident)
			if bid is None:
				if expr.ident == "NULL":
					return I.Literal(None, is_null=True, span=span)
				if expr.ident in self.signatures:
					return I.Literal(expr.ident, span=span)  # function designator
				logger.debug("implicitly declaring global '%s'", expr.ident)
				bid = self._new_binding(expr.ident, self.types.ensure_unknown(), expr.loc, is_global=True)
			return I.Var(name=expr.ident, binding_id=bid, span=span)
		if isinstance(expr, (A.Number, A.CharLit)):
			return I.Literal(expr.text, span=span)
		if isinstance(expr, A.StringLit):
			return I.Literal(expr.value, span=span)
		if isinstance(expr, A.FieldAccess):
			subject = self._lower_expr(expr.subject, out)
			# `p.f` on a pointer is read as `p->f`.
			through = expr.arrow or self.types.is_ref(self._expr_type(subject))
			return I.Field(subject=subject, name=expr.name, through_pointer=through, span=span)
		if isinstance(expr, A.IndexExpr):
			return I.Index(subject=self._lower_expr(expr.subject, out), index=self._lower_expr(expr.index, out), span=span)
		if isinstance(expr, A.CallExpr):
			return self._lower_call(expr, out)
		if isinstance(expr, A.UnaryExpr):
			if expr.op in ("++", "--"):
				return self._lower_incdec(expr, out)
			operand = self._lower_expr(expr.operand, out)
			if expr.op == "&":
				return I.AddrOf(subject=operand, span=span)
			if expr.op == "*":
				return I.Deref(subject=operand, span=span)
			return I.Unary(op=expr.op, operand=operand, span=span)
		if isinstance(expr, A.BinaryExpr):
			return I.Binary(op=expr.op, left=self._lower_expr(expr.left, out), right=self._lower_expr(expr.right, out), span=span)
		if isinstance(expr, A.TernaryExpr):
			return I.Ternary(
				cond=self._lower_expr(expr.cond, out),
				then_expr=self._lower_expr(expr.then_expr, out),
				else_expr=self._lower_expr(expr.else_expr, out),
				span=span,
			)
		if isinstance(expr, A.AssignExpr):
			return self._lower_assign(expr, out)
		if isinstance(expr, A.CastExpr):
			ty = self._type_name(expr.type_name)
			return I.Cast(expr=self._lower_value(expr.expr, ty, out), ty=ty, span=span)
		if isinstance(expr, A.SizeOfExpr):
			return I.SizeOf(span=span)
		if isinstance(expr, A.InitList):
			return self._lower_init_list(expr, None, out)
		if isinstance(expr, A.CompoundLiteral):
			ty = self._type_name(expr.type_name)
			return I.Cast(expr=self._lower_init_list(expr.init, ty, out), ty=ty, span=span)
		raise LoweringError(f"unsupported expression {type(expr).__name__}", loc=expr.loc)

	def _lower_call(self, expr: A.CallExpr, out: List[I.Stmt]) -> I.Call:
		span = self._span(expr.loc)
		if isinstance(expr.func, A.Name) and self._lookup(expr.func.ident) is None:
			signature = self.signatures.get(expr.func.ident)
			params = signature.param_type_ids if signature is not None else None
			args = [
				self._lower_value(arg, params[idx] if params is not None and idx < len(params) else None, out)
				for idx, arg in enumerate(expr.args)
			]
			return I.Call(
				callee=expr.func.ident,
				args=args,
				ty=signature.return_type_id if signature is not None else None,
				span=span,
			)
		# Indirect call: the function pointer expression is evaluated like a
		# leading argument of an unknown callee.
		func = self._lower_expr(expr.func, out)
		args = [self._lower_expr(arg, out) for arg in expr.args]
		return I.Call(callee=None, args=[func, *args], span=span)


__all__ = ["LoweredProgram", "LoweringError", "lower_translation_unit"]
