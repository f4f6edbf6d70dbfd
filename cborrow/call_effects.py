# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
# author: Sławomir Liszniański; created: 2026-10-18
"""
Call-effect resolver: what a call does to the places its arguments name.

Given the callee's declared parameter types (or nothing, when the callee has
no visible prototype), each argument is classified as one of:

  BORROW_CONST  `&p` passed to a `const T *` parameter
  BORROW_MUT    `&p` passed to a `T *` parameter, or to an unknown parameter
  MOVE          an owner-typed place passed by value
  USE_REF       a reference passed along (it must still be valid)
  READ          anything else: evaluated as an ordinary value

The pass applies the effects; this module only decides them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, List, Optional

from cborrow import ir as I
from cborrow.core.types_core import TypeClass, TypeId, TypeTable


@dataclass
class FnSignature:
	"""
	Declared signature of a callee as seen at the call site.

	`param_type_ids` is None for an old-style declaration without a parameter
	list (`int f();`), which is treated like an unknown callee. Parameters past
	the declared ones (variadic tails) are unknown as well.
	"""

	name: str
	param_type_ids: Optional[List[TypeId]] = None
	return_type_id: Optional[TypeId] = None
	variadic: bool = False
	loc: Optional[Any] = None


class ArgEffectKind(Enum):
	BORROW_CONST = auto()
	BORROW_MUT = auto()
	MOVE = auto()
	USE_REF = auto()
	READ = auto()


@dataclass(frozen=True)
class ArgEffect:
	index: int
	kind: ArgEffectKind
	arg: I.Expr = field(compare=False)
	param_known: bool = True


def _strip_casts(expr: I.Expr) -> I.Expr:
	while isinstance(expr, I.Cast):
		expr = expr.expr
	return expr


def resolve_call_effects(
	signature: Optional[FnSignature],
	args: List[I.Expr],
	*,
	type_table: TypeTable,
	arg_type: Callable[[I.Expr], Optional[TypeId]],
) -> List[ArgEffect]:
	"""
	Classify every argument of a call.

	`arg_type` returns the static type of an lvalue argument (None for rvalues);
	it is supplied by the pass, which knows the declarations.
	"""
	params = signature.param_type_ids if signature is not None else None
	effects: List[ArgEffect] = []
	for idx, raw_arg in enumerate(args):
		arg = _strip_casts(raw_arg)
		param_ty: Optional[TypeId] = None
		known = params is not None and idx < len(params)
		if known:
			param_ty = params[idx]  # type: ignore[index]
		if isinstance(arg, I.AddrOf):
			if known and type_table.is_ref(param_ty) and not type_table.is_mut_ref(param_ty):
				kind = ArgEffectKind.BORROW_CONST
			else:
				# Mutable parameter, or nothing known: assume the worst.
				kind = ArgEffectKind.BORROW_MUT
			effects.append(ArgEffect(idx, kind, raw_arg, known))
			continue
		ty_class = type_table.classify(arg_type(arg))
		if ty_class is TypeClass.OWNER:
			effects.append(ArgEffect(idx, ArgEffectKind.MOVE, raw_arg, known))
		elif ty_class is TypeClass.REFERENCE:
			effects.append(ArgEffect(idx, ArgEffectKind.USE_REF, raw_arg, known))
		else:
			effects.append(ArgEffect(idx, ArgEffectKind.READ, raw_arg, known))
	return effects


__all__ = ["FnSignature", "ArgEffectKind", "ArgEffect", "resolve_call_effects"]
