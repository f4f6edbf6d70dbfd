# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
# author: Sławomir Liszniański; created: 2026-10-18
"""
Lark-based parser for the C subset, producing `cborrow.frontend.ast` nodes.

The grammar lives next to this module (`grammar.lark`). C cannot be parsed
without knowing which identifiers name types, so a post-lexer retypes NAME
tokens into TYPE_NAME: names introduced by `typedef` earlier in the file, a
few well-known library typedefs, and names that can only be types where they
stand (`u64 x;`, `foo_t *p`).
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Set

from lark import Lark, Token, Tree

from .ast import (
	AssignExpr,
	BinaryExpr,
	BreakStmt,
	CallExpr,
	CastExpr,
	CharLit,
	Compound,
	CompoundLiteral,
	ContinueStmt,
	Declarator,
	DoWhileStmt,
	Enumerator,
	Expr,
	ExprStmt,
	FieldAccess,
	FieldDecl,
	ForStmt,
	FunctionDef,
	IfStmt,
	IndexExpr,
	InitDeclarator,
	InitItem,
	InitList,
	Located,
	Name,
	Number,
	Param,
	ReturnStmt,
	SizeOfExpr,
	Stmt,
	StringLit,
	TernaryExpr,
	TranslationUnit,
	TypedefDecl,
	TypeName,
	TypeSpec,
	UnaryExpr,
	VarDeclaration,
	WhileStmt,
)

_GRAMMAR_PATH = Path(__file__).with_name("grammar.lark")
_GRAMMAR_SRC = _GRAMMAR_PATH.read_text()

# Typedefs from the C library that sources use without their headers (the
# preprocessor is not run).
KNOWN_TYPEDEFS = frozenset(
	{
		"size_t",
		"ssize_t",
		"ptrdiff_t",
		"intptr_t",
		"uintptr_t",
		"int8_t",
		"int16_t",
		"int32_t",
		"int64_t",
		"uint8_t",
		"uint16_t",
		"uint32_t",
		"uint64_t",
		"bool",
		"FILE",
		"loff_t",
		"u8",
		"u16",
		"u32",
		"u64",
		"s8",
		"s16",
		"s32",
		"s64",
	}
)

_TYPE_KEYWORDS = frozenset({"VOID", "CHAR", "SHORT", "INT", "LONG", "FLOAT", "DOUBLE", "SIGNED", "UNSIGNED", "BOOL"})
_SPEC_KEYWORDS = frozenset({"TYPEDEF", "STATIC", "EXTERN", "INLINE", "REGISTER", "AUTO", "CONST", "VOLATILE", "RESTRICT"})
_TAG_KEYWORDS = frozenset({"STRUCT", "UNION", "ENUM"})


class TypeNamePostLex:
	"""
	Post-lexer that turns NAME tokens which denote types into TYPE_NAME.

	It also records the names declared by each `typedef` as the token stream
	goes by, so later uses parse as types.
	"""

	always_accept = ()

	def __init__(self, known: Iterable[str] = KNOWN_TYPEDEFS) -> None:
		self._known = frozenset(known)

	def process(self, stream: Iterable[Token]) -> Iterator[Token]:
		tokens = list(stream)
		typedefs: Set[str] = set(self._known)
		brace = 0
		paren = 0
		typedef_level: Optional[int] = None
		typedef_paren = 0
		declared: Optional[str] = None
		prev: Optional[Token] = None
		prev2: Optional[Token] = None
		for idx, tok in enumerate(tokens):
			if tok.type == "NAME" and self._is_type_name(tok, idx, tokens, prev, prev2, typedefs, brace, paren, typedef_level):
				tok = Token.new_borrow_pos("TYPE_NAME", tok.value, tok)
			if tok.type == "TYPEDEF":
				typedef_level = brace
				typedef_paren = paren
				declared = None
			elif typedef_level is not None:
				if (
					tok.type == "NAME"
					and brace == typedef_level
					and declared is None
					and (prev is None or prev.type not in _TAG_KEYWORDS)
				):
					declared = tok.value
				elif tok.value in (",", ";") and brace == typedef_level and paren == typedef_paren:
					if declared is not None:
						typedefs.add(declared)
					declared = None
					if tok.value == ";":
						typedef_level = None
			if tok.value == "{":
				brace += 1
			elif tok.value == "}" and brace:
				brace -= 1
			elif tok.value == "(":
				paren += 1
			elif tok.value == ")" and paren:
				paren -= 1
			yield tok
			prev2, prev = prev, tok

	def _is_type_name(
		self,
		tok: Token,
		idx: int,
		tokens: List[Token],
		prev: Optional[Token],
		prev2: Optional[Token],
		typedefs: Set[str],
		brace: int,
		paren: int,
		typedef_level: Optional[int],
	) -> bool:
		if prev is not None:
			if prev.value in (".", "->") or prev.type in _TAG_KEYWORDS:
				return False
			# `T T2`: the second name is the declarator, even if it is a typedef name too.
			if prev.type in _TYPE_KEYWORDS or prev.type == "TYPE_NAME":
				return False
			if typedef_level is not None and brace == typedef_level and prev.value == "}":
				return False
		if tok.value in typedefs:
			return True
		nxt = tokens[idx + 1] if idx + 1 < len(tokens) else None
		if nxt is None:
			return False
		if tok.value.endswith("_t") and prev is not None and prev.value == "(" and nxt.value in ("*", ")"):
			return True
		if not self._at_declaration_start(prev, prev2, brace, paren):
			return False
		if nxt.type == "NAME":
			return True
		if nxt.value == "*":
			j = idx + 1
			while j < len(tokens) and (tokens[j].value == "*" or tokens[j].type in ("CONST", "VOLATILE", "RESTRICT")):
				j += 1
			if j + 1 >= len(tokens) or tokens[j].type != "NAME":
				return False
			follow = tokens[j + 1].value
			if follow in (";", ",", ")", "=", "["):
				return True
			return follow == "(" and brace == 0
		return False

	@staticmethod
	def _at_declaration_start(prev: Optional[Token], prev2: Optional[Token], brace: int, paren: int) -> bool:
		if prev is None or prev.value in (";", "{", "}"):
			return paren == 0
		if prev.type in _SPEC_KEYWORDS:
			return True
		if prev.value in ("(", ",") and paren > 0 and brace == 0:
			# parameter lists of prototypes and definitions
			return True
		return prev.value == "(" and prev2 is not None and prev2.type == "FOR"


_PARSER = Lark(
	_GRAMMAR_SRC,
	parser="lalr",
	lexer="basic",
	start="start",
	propagate_positions=True,
	maybe_placeholders=False,
	postlex=TypeNamePostLex(),
)


def parse_program(source: str, *, filename: Optional[str] = None) -> TranslationUnit:
	"""
	Parse a C source text. Raises `lark.exceptions.UnexpectedInput` on syntax
	errors (the driver turns those into parser-phase diagnostics).
	"""
	tree = _PARSER.parse(source)
	return _build_unit(tree, filename)


class ParseError(ValueError):
	"""User-facing error for constructs the grammar accepts but the front-end cannot model."""

	def __init__(self, message: str, *, loc: object | None) -> None:
		super().__init__(message)
		self.loc = loc


def _build_unit(tree: Tree, filename: Optional[str]) -> TranslationUnit:
	unit = TranslationUnit(filename=filename)
	for child in tree.children:
		if not isinstance(child, Tree):
			continue
		kind = _name(child)
		if kind == "function_def":
			unit.items.append(_build_function(child))
		elif kind == "declaration":
			unit.items.append(_build_declaration(child))
		elif kind == "typedef_decl":
			unit.items.append(_build_typedef(child))
	return unit


def _build_function(tree: Tree) -> FunctionDef:
	specs, declarator, body = tree.children
	return FunctionDef(
		type_spec=_build_decl_specs(specs),
		declarator=_build_declarator(declarator),
		body=_build_compound(body),
		loc=_loc(tree),
	)


# -- declarations ---------------------------------------------------------------

def _build_declaration(tree: Tree) -> VarDeclaration:
	subtrees = _trees(tree)
	items: List[InitDeclarator] = []
	for node in subtrees[1:]:
		parts = _trees(node)
		init = _build_init_value(parts[1]) if len(parts) > 1 else None
		items.append(InitDeclarator(declarator=_build_declarator(parts[0]), init=init))
	return VarDeclaration(type_spec=_build_decl_specs(subtrees[0]), items=items, loc=_loc(tree))


def _build_typedef(tree: Tree) -> TypedefDecl:
	subtrees = _trees(tree)
	return TypedefDecl(
		type_spec=_build_decl_specs(subtrees[0]),
		declarators=[_build_declarator(d) for d in subtrees[1:]],
		loc=_loc(tree),
	)


def _build_decl_specs(tree: Tree) -> TypeSpec:
	"""
	Fold declaration specifiers into one TypeSpec. Multiple builtin words
	combine (`unsigned long`); qualifiers and storage classes are flags.
	"""
	builtin_words: List[str] = []
	storage: List[str] = []
	is_const = False
	spec: Optional[TypeSpec] = None
	for node in _trees(tree):
		kind = _name(node)
		# Tagless struct bodies carry no token of their own.
		if kind == "storage":
			storage.append(_first_token(node).value)
		elif kind == "qualifier":
			is_const = is_const or _first_token(node).type == "CONST"
		elif kind == "builtin_type":
			builtin_words.append(_first_token(node).value)
		elif kind == "typedef_name":
			tok = _first_token(node)
			spec = TypeSpec(kind="typedef", name=tok.value, loc=_loc_from_token(tok))
		elif kind in ("struct_def", "struct_ref"):
			spec = _build_struct_spec(node)
		elif kind in ("enum_def", "enum_ref"):
			spec = _build_enum_spec(node)
	if spec is None:
		words = builtin_words or ["int"]
		spec = TypeSpec(kind="builtin", name=" ".join(words), loc=_loc(tree))
	spec.is_const = is_const
	spec.storage = storage
	return spec


def _build_struct_spec(tree: Tree) -> TypeSpec:
	kw = _first_token(_trees(tree)[0])
	name_tok = next((c for c in tree.children if isinstance(c, Token) and c.type == "NAME"), None)
	fields: Optional[List[FieldDecl]] = None
	if _name(tree) == "struct_def":
		fields = []
		for node in _trees(tree)[1:]:
			parts = _trees(node)
			fields.append(
				FieldDecl(
					type_spec=_build_decl_specs(parts[0]),
					declarators=[_build_declarator(d) for d in parts[1:]],
					loc=_loc(node),
				)
			)
	return TypeSpec(
		kind="struct",
		name=name_tok.value if name_tok is not None else None,
		loc=_loc(tree),
		is_union=kw.type == "UNION",
		fields=fields,
	)


def _build_enum_spec(tree: Tree) -> TypeSpec:
	name_tok = next((c for c in tree.children if isinstance(c, Token) and c.type == "NAME"), None)
	enumerators: Optional[List[Enumerator]] = None
	if _name(tree) == "enum_def":
		enumerators = []
		for node in _trees(tree):
			ident = _first_token(node)
			value_nodes = _trees(node)
			enumerators.append(
				Enumerator(
					name=ident.value,
					value=_build_expr(value_nodes[0]) if value_nodes else None,
					loc=_loc_from_token(ident),
				)
			)
	return TypeSpec(
		kind="enum",
		name=name_tok.value if name_tok is not None else None,
		loc=_loc(tree),
		enumerators=enumerators,
	)


def _build_pointers(nodes: List[Tree]) -> List[bool]:
	return [
		any(isinstance(q, Tree) and _first_token(q).type == "CONST" for q in node.children)
		for node in nodes
		if _name(node) == "pointer"
	]


def _build_declarator(tree: Tree) -> Declarator:
	subtrees = _trees(tree)
	pointers = _build_pointers(subtrees[:-1])
	decl = _build_direct(subtrees[-1])
	decl.pointers = pointers + decl.pointers
	return decl


def _build_direct(node: Tree) -> Declarator:
	kind = _name(node)
	if kind == "decl_name":
		tok = _first_token(node)
		return Declarator(name=tok.value, loc=_loc_from_token(tok))
	if kind == "decl_paren":
		return _build_declarator(_trees(node)[0])
	if kind == "decl_array":
		inner = _build_direct(_trees(node)[0])
		inner.array_dims += 1
		return inner
	if kind == "decl_func":
		inner_node, params_node = _trees(node)
		inner = _build_direct(inner_node)
		if inner.pointers or inner.params is not None:
			# `(*fp)(...)`: a pointer to a function, not a function.
			inner.function_pointer = True
			inner.pointers = []
			return inner
		inner.params, inner.variadic = _build_params(params_node)
		return inner
	raise ParseError(f"unsupported declarator '{kind}'", loc=_loc(node))


def _build_params(tree: Tree) -> tuple[List[Param], bool]:
	params: List[Param] = []
	variadic = any(isinstance(c, Token) and c.type == "ELLIPSIS" for c in tree.children)
	for node in _trees(tree):
		parts = _trees(node)
		specs = _build_decl_specs(parts[0])
		pointer_nodes = [p for p in parts[1:] if _name(p) == "pointer"]
		direct = [p for p in parts[1:] if _name(p) != "pointer"]
		if direct:
			decl = _build_direct(direct[0])
		else:
			decl = Declarator(name=None, loc=_loc(node))
		decl.pointers = _build_pointers(pointer_nodes) + decl.pointers
		params.append(Param(type_spec=specs, declarator=decl, loc=_loc(node)))
	return params, variadic


def _build_type_name(tree: Tree) -> TypeName:
	subtrees = _trees(tree)
	return TypeName(type_spec=_build_decl_specs(subtrees[0]), pointers=_build_pointers(subtrees[1:]))


# -- statements -----------------------------------------------------------------

def _build_compound(tree: Tree) -> Compound:
	items = []
	for node in _trees(tree):
		item = _build_block_item(node)
		if item is not None:
			items.append(item)
	meta = tree.meta
	end = None
	if not meta.empty:
		end = Located(line=meta.end_line, column=max(meta.end_column - 1, 1))
	return Compound(items=items, loc=_loc(tree), end_loc=end)


def _build_block_item(node: Tree):
	kind = _name(node)
	if kind == "declaration":
		return _build_declaration(node)
	if kind == "typedef_decl":
		return _build_typedef(node)
	return _build_stmt(node)


def _build_stmt(tree: Tree) -> Optional[Stmt]:
	kind = _name(tree)
	subtrees = _trees(tree)
	if kind == "compound_stmt":
		return _build_compound(tree)
	if kind == "empty_stmt":
		return None
	if kind == "expr_stmt":
		return ExprStmt(expr=_build_expr(subtrees[0]), loc=_loc(tree))
	if kind == "if_stmt":
		else_stmt = _build_stmt_or_empty(subtrees[2]) if len(subtrees) > 2 else None
		return IfStmt(
			cond=_build_expr(subtrees[0]),
			then_stmt=_build_stmt_or_empty(subtrees[1]),
			else_stmt=else_stmt,
			loc=_loc(tree),
		)
	if kind == "while_stmt":
		return WhileStmt(cond=_build_expr(subtrees[0]), body=_build_stmt_or_empty(subtrees[1]), loc=_loc(tree))
	if kind == "do_stmt":
		return DoWhileStmt(body=_build_stmt_or_empty(subtrees[0]), cond=_build_expr(subtrees[1]), loc=_loc(tree))
	if kind == "for_stmt":
		init_node, test_node, step_node, body = subtrees
		init = None
		init_parts = _trees(init_node)
		if init_parts:
			if _name(init_parts[0]) == "declaration":
				init = _build_declaration(init_parts[0])
			else:
				init = _build_expr(init_parts[0])
		test_parts = _trees(test_node)
		step_parts = _trees(step_node)
		return ForStmt(
			init=init,
			cond=_build_expr(test_parts[0]) if test_parts else None,
			step=_build_expr(step_parts[0]) if step_parts else None,
			body=_build_stmt_or_empty(body),
			loc=_loc(tree),
		)
	if kind == "return_stmt":
		return ReturnStmt(value=_build_expr(subtrees[0]) if subtrees else None, loc=_loc(tree))
	if kind == "break_stmt":
		return BreakStmt(loc=_loc(tree))
	if kind == "continue_stmt":
		return ContinueStmt(loc=_loc(tree))
	raise ParseError(f"unsupported statement '{kind}'", loc=_loc(tree))


def _build_stmt_or_empty(tree: Tree) -> Stmt:
	stmt = _build_stmt(tree)
	if stmt is None:
		return Compound(items=[], loc=_loc(tree))
	return stmt


# -- expressions ----------------------------------------------------------------

def _build_init_value(node) -> Expr:
	if isinstance(node, Tree) and _name(node) == "init_list":
		return _build_init_list(node)
	return _build_expr(node)


def _build_init_list(tree: Tree) -> InitList:
	items: List[InitItem] = []
	for node in _trees(tree):
		kind = _name(node)
		if kind == "designated":
			ident = _first_token(node)
			items.append(InitItem(value=_build_init_value(_trees(node)[-1]), field_name=ident.value))
		elif kind == "index_designated":
			items.append(InitItem(value=_build_init_value(_trees(node)[-1])))
		else:
			items.append(InitItem(value=_build_init_value(node)))
	return InitList(items=items, loc=_loc(tree))


def _build_expr(node) -> Expr:
	if isinstance(node, Token):
		raise TypeError(f"Unexpected token in expression position: {node.type}")
	name = _name(node)
	children = node.children
	subtrees = _trees(node)
	loc = _loc(node)
	if name == "var":
		return Name(ident=children[0].value, loc=loc)
	if name == "number":
		return Number(text=children[0].value, loc=loc)
	if name == "char_lit":
		return CharLit(text=children[0].value, loc=loc)
	if name == "string":
		return StringLit(value="".join(tok.value[1:-1] for tok in children), loc=loc)
	if name == "init_list":
		return _build_init_list(node)
	if name == "assign":
		op = _first_token(subtrees[1]).value
		return AssignExpr(op=op, target=_build_expr(subtrees[0]), value=_build_init_value(subtrees[2]), loc=loc)
	if name == "ternary":
		return TernaryExpr(
			cond=_build_expr(subtrees[0]),
			then_expr=_build_expr(subtrees[1]),
			else_expr=_build_expr(subtrees[2]),
			loc=loc,
		)
	if name == "binary":
		left, op, right = children
		return BinaryExpr(op=op.value, left=_build_expr(left), right=_build_expr(right), loc=loc)
	if name == "cast":
		return CastExpr(type_name=_build_type_name(subtrees[0]), expr=_build_expr(subtrees[1]), loc=loc)
	if name == "pre_incdec":
		return UnaryExpr(op=children[0].value, operand=_build_expr(subtrees[0]), loc=loc)
	if name == "post_incdec":
		return UnaryExpr(op=children[-1].value, operand=_build_expr(subtrees[0]), loc=loc, postfix=True)
	if name in ("addr_of", "deref", "unary_op"):
		return UnaryExpr(op=children[0].value, operand=_build_expr(subtrees[0]), loc=loc)
	if name in ("sizeof_expr", "sizeof_type"):
		return SizeOfExpr(loc=loc)
	if name == "index":
		return IndexExpr(subject=_build_expr(subtrees[0]), index=_build_expr(subtrees[1]), loc=loc)
	if name == "call":
		args: List[Expr] = []
		if len(subtrees) > 1:
			args = [_build_init_value(a) for a in _trees(subtrees[1])]
		return CallExpr(func=_build_expr(subtrees[0]), args=args, loc=loc)
	if name in ("field", "arrow"):
		field_tok = children[-1]
		return FieldAccess(subject=_build_expr(subtrees[0]), name=field_tok.value, arrow=name == "arrow", loc=loc)
	if name == "compound_lit":
		return CompoundLiteral(type_name=_build_type_name(subtrees[0]), init=_build_init_list(subtrees[1]), loc=loc)
	raise ParseError(f"unsupported expression '{name}'", loc=loc)


# -- helpers --------------------------------------------------------------------

def _trees(tree: Tree) -> List[Tree]:
	return [c for c in tree.children if isinstance(c, Tree)]


def _first_token(tree: Tree) -> Token:
	for child in tree.children:
		if isinstance(child, Token):
			return child
	raise TypeError(f"'{_name(tree)}' node has no token")


def _loc(tree: Tree) -> Located:
	meta = tree.meta
	if meta.empty:
		return Located(line=0, column=0)
	return Located(line=meta.line, column=meta.column, end_line=meta.end_line, end_column=meta.end_column)


def _loc_from_token(token: Token) -> Located:
	return Located(line=token.line, column=token.column, end_line=token.end_line, end_column=token.end_column)


def _name(node: Tree | Token) -> str:
	if isinstance(node, Tree):
		data = node.data
		if isinstance(data, Token):
			return data.value
		return data
	if isinstance(node, Token):
		return node.type
	return str(node)


__all__ = ["parse_program", "ParseError", "TypeNamePostLex", "KNOWN_TYPEDEFS"]
