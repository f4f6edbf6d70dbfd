# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
# author: Sławomir Liszniański; created: 2026-10-18
"""
Minimal type core shared by the front-end and the borrow checker.

TypeIds are opaque ints indexing into a TypeTable. The borrow checker only
cares about three classes of types:

* Copy  -- scalars (and anything unknown): duplicated freely;
* Owner -- structs: move-only aggregates whose fields are places too;
* Ref   -- pointers, either mutable (`T *`) or const (`const T *`).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, List, Optional, Tuple


TypeId = int  # opaque handle into the TypeTable


class TypeKind(Enum):
	"""Kinds of types understood by the type core."""

	SCALAR = auto()
	STRUCT = auto()
	REF = auto()
	FUNCTION = auto()
	UNKNOWN = auto()


class TypeClass(Enum):
	"""Ownership classification of a type as seen by the borrow checker."""

	COPY = auto()
	OWNER = auto()
	REFERENCE = auto()


@dataclass(frozen=True)
class TypeDef:
	"""Definition of a type stored in the TypeTable."""

	kind: TypeKind
	name: str
	param_types: List[TypeId]
	ref_mut: bool | None = None  # only meaningful for TypeKind.REF


class TypeTable:
	"""
	Simple type table that owns TypeIds.

	Struct layouts live beside the TypeDefs (`struct_fields`) so a struct can be
	registered first and filled in later; this is what forward declarations and
	self-referential structs (`struct node *next`) need.
	"""

	def __init__(self) -> None:
		self._defs: Dict[TypeId, TypeDef] = {}
		self._next_id: TypeId = 1  # reserve 0 for "invalid"
		self._scalars: Dict[str, TypeId] = {}
		self._structs: Dict[str, TypeId] = {}
		self._struct_fields: Dict[TypeId, Tuple[Tuple[str, TypeId], ...]] = {}
		self._ref_cache: Dict[Tuple[TypeId, bool], TypeId] = {}
		self._unknown_type: TypeId | None = None

	def new_scalar(self, name: str) -> TypeId:
		"""Register a scalar type (e.g., int, float) and return its TypeId."""
		return self._add(TypeKind.SCALAR, name, [])

	def ensure_scalar(self, name: str) -> TypeId:
		"""Return a stable scalar TypeId for `name`, creating it once."""
		if name not in self._scalars:
			self._scalars[name] = self.new_scalar(name)
		return self._scalars[name]

	def ensure_int(self) -> TypeId:
		"""Return a stable int TypeId, creating it once."""
		return self.ensure_scalar("int")

	def ensure_void(self) -> TypeId:
		"""Return a stable void TypeId, creating it once."""
		return self.ensure_scalar("void")

	def ensure_unknown(self) -> TypeId:
		"""Return a stable Unknown TypeId, creating it once."""
		if self._unknown_type is None:
			self._unknown_type = self._add(TypeKind.UNKNOWN, "Unknown", [])
		return self._unknown_type

	def ensure_struct(self, name: str) -> TypeId:
		"""Return the TypeId for struct `name`, registering an empty layout on first sight."""
		if name not in self._structs:
			ty = self._add(TypeKind.STRUCT, name, [])
			self._structs[name] = ty
			self._struct_fields[ty] = ()
		return self._structs[name]

	def lookup_struct(self, name: str) -> Optional[TypeId]:
		"""Return the TypeId of a known struct, or None."""
		return self._structs.get(name)

	def set_struct_fields(self, ty: TypeId, fields: List[Tuple[str, TypeId]]) -> None:
		"""Install the field layout of a struct (later definitions replace earlier ones)."""
		if self.get(ty).kind is not TypeKind.STRUCT:
			raise ValueError(f"type '{self.get(ty).name}' is not a struct")
		self._struct_fields[ty] = tuple(fields)

	def struct_fields(self, ty: TypeId) -> Tuple[Tuple[str, TypeId], ...]:
		"""Return the (name, TypeId) field layout of a struct type."""
		return self._struct_fields.get(ty, ())

	def field_type(self, ty: TypeId, name: str) -> Optional[TypeId]:
		"""Return the TypeId of field `name` of struct `ty`, or None when unknown."""
		for field_name, field_ty in self.struct_fields(ty):
			if field_name == name:
				return field_ty
		return None

	def ensure_ref(self, inner: TypeId) -> TypeId:
		"""Return a stable const reference TypeId to `inner`, creating it once."""
		return self.new_ref(inner, is_mut=False)

	def ensure_ref_mut(self, inner: TypeId) -> TypeId:
		"""Return a stable mutable reference TypeId to `inner`, creating it once."""
		return self.new_ref(inner, is_mut=True)

	def new_ref(self, inner: TypeId, is_mut: bool) -> TypeId:
		"""Register a reference type to `inner` (mutable vs const encoded in ref_mut/name)."""
		key = (inner, is_mut)
		if key not in self._ref_cache:
			name = "RefMut" if is_mut else "Ref"
			self._ref_cache[key] = self._add(TypeKind.REF, name, [inner], ref_mut=is_mut)
		return self._ref_cache[key]

	def new_function(self, name: str, param_types: List[TypeId], return_type: TypeId) -> TypeId:
		"""Register a function type (name + params + return)."""
		return self._add(TypeKind.FUNCTION, name, [*param_types, return_type])

	def _add(self, kind: TypeKind, name: str, params: List[TypeId], ref_mut: bool | None = None) -> TypeId:
		ty_id = self._next_id
		self._next_id += 1
		self._defs[ty_id] = TypeDef(kind=kind, name=name, param_types=list(params), ref_mut=ref_mut if kind is TypeKind.REF else None)
		return ty_id

	def get(self, ty: TypeId) -> TypeDef:
		"""Fetch the TypeDef for a given TypeId."""
		return self._defs[ty]

	def classify(self, ty: Optional[TypeId]) -> TypeClass:
		"""Map a TypeId to Copy/Owner/Reference; unknown types are Copy."""
		if ty is None or ty not in self._defs:
			return TypeClass.COPY
		kind = self._defs[ty].kind
		if kind is TypeKind.STRUCT:
			return TypeClass.OWNER
		if kind is TypeKind.REF:
			return TypeClass.REFERENCE
		return TypeClass.COPY

	def is_owner(self, ty: Optional[TypeId]) -> bool:
		return self.classify(ty) is TypeClass.OWNER

	def is_ref(self, ty: Optional[TypeId]) -> bool:
		return self.classify(ty) is TypeClass.REFERENCE

	def is_mut_ref(self, ty: Optional[TypeId]) -> bool:
		return self.is_ref(ty) and self.get(ty).ref_mut is True  # type: ignore[arg-type]

	def pointee(self, ty: Optional[TypeId]) -> Optional[TypeId]:
		"""Return the pointee TypeId of a reference type, or None."""
		if not self.is_ref(ty):
			return None
		return self.get(ty).param_types[0]  # type: ignore[arg-type]

	def describe(self, ty: Optional[TypeId]) -> str:
		"""Render a C-ish spelling of a type for messages and traces."""
		if ty is None or ty not in self._defs:
			return "?"
		td = self._defs[ty]
		if td.kind is TypeKind.REF:
			inner = self.describe(td.param_types[0])
			return f"{inner} *" if td.ref_mut else f"const {inner} *"
		if td.kind is TypeKind.STRUCT:
			return f"struct {td.name}"
		return td.name


__all__ = ["TypeId", "TypeKind", "TypeClass", "TypeDef", "TypeTable"]
