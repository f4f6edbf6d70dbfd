#!/usr/bin/env python3
# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
# author: Sławomir Liszniański; created: 2026-10-18
"""
Control-flow graph consumed by the borrow-check pass.

A function body is a list of basic blocks holding straight-line IR statements
and one terminator each. Scope frames are explicit: every compound statement
is bracketed by `ScopeEnter`/`ScopeExit`, and `break`/`continue` emit the
exits of the frames they leave before jumping, so the pass never has to
re-derive lexical structure from the graph.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from cborrow import ir as I
from cborrow.core.span import Span


@dataclass
class Terminator:
	"""CFG terminator describing control-flow edges out of a basic block."""

	kind: str  # "jump", "branch", "loop", "return"
	targets: List[int]
	cond: Optional[I.Expr] = None
	value: Optional[I.Expr] = None


@dataclass
class BasicBlock:
	"""Basic block of IR statements with a single terminator."""

	id: int
	statements: List[I.Stmt] = field(default_factory=list)
	terminator: Optional[Terminator] = None

	@property
	def successors(self) -> List[int]:
		return list(self.terminator.targets) if self.terminator else []


@dataclass
class FunctionCfg:
	"""
	One function body ready for analysis.

	`decls` covers every binding the body mentions (globals included);
	`globals` lists the global binding ids live on entry.
	"""

	name: str
	blocks: List[BasicBlock]
	entry: int
	decls: Dict[int, I.VarDecl] = field(default_factory=dict)
	globals: List[int] = field(default_factory=list)
	span: Span = field(default_factory=Span)

	def block(self, bid: int) -> BasicBlock:
		return self.blocks[bid]


class CfgError(ValueError):
	"""Structured body cannot be lowered (e.g. `break` outside a loop)."""

	def __init__(self, message: str, *, loc: object | None = None) -> None:
		super().__init__(message)
		self.loc = loc


@dataclass(frozen=True)
class _LoopCtx:
	break_target: int
	continue_target: int
	depth: int  # number of frames open when the loop was entered


GLOBAL_FRAME_ID = 0


def build_cfg(
	name: str,
	body: I.Block,
	*,
	decls: Mapping[int, I.VarDecl],
	params: Sequence[int] = (),
	globals: Sequence[int] = (),
	span: Optional[Span] = None,
) -> FunctionCfg:
	"""
	Lower a structured function body into a CFG.

	Each If/While/Block introduces new blocks with branch/loop/jump
	terminators. Tail statements after a control construct are placed in a
	continuation block so successors join correctly. Return terminates a block
	with no successors. Block 0 is the (empty) function exit.
	"""
	blocks: List[BasicBlock] = []
	frame_counter = [GLOBAL_FRAME_ID]

	def new_block() -> BasicBlock:
		bb = BasicBlock(id=len(blocks))
		blocks.append(bb)
		return bb

	def new_frame() -> int:
		frame_counter[0] += 1
		return frame_counter[0]

	exit_block = new_block()
	exit_block.terminator = Terminator(kind="return", targets=[])

	def exits_for(frames: Tuple[int, ...], depth: int, at: Span) -> List[I.Stmt]:
		return [I.ScopeExit(fid, span=at) for fid in reversed(frames[depth:])]

	def build_scoped(block: I.Block, cont: int, frames: Tuple[int, ...], loop: Optional[_LoopCtx]) -> int:
		fid = new_frame()
		stmts: List[I.Stmt] = [I.ScopeEnter(fid, span=block.span)]
		stmts.extend(block.statements)
		stmts.append(I.ScopeExit(fid, span=block.end_span))
		return build(stmts, cont, frames + (fid,), loop)

	def build(stmts: List[I.Stmt], cont: int, frames: Tuple[int, ...], loop: Optional[_LoopCtx]) -> int:
		bb = new_block()
		idx = 0
		while idx < len(stmts):
			stmt = stmts[idx]
			if isinstance(stmt, (I.If, I.While, I.Block)):
				tail = stmts[idx + 1 :]
				cont_entry = build(tail, cont, frames, loop) if tail else cont
				if isinstance(stmt, I.Block):
					inner = build_scoped(stmt, cont_entry, frames, loop)
					bb.terminator = Terminator(kind="jump", targets=[inner])
				elif isinstance(stmt, I.If):
					then_entry = build_scoped(stmt.then_block, cont_entry, frames, loop)
					else_entry = cont_entry
					if stmt.else_block is not None:
						else_entry = build_scoped(stmt.else_block, cont_entry, frames, loop)
					bb.terminator = Terminator(kind="branch", targets=[then_entry, else_entry], cond=stmt.cond)
				else:
					header = new_block()
					step_entry = build(list(stmt.step), header.id, frames, loop) if stmt.step else header.id
					inner_loop = _LoopCtx(break_target=cont_entry, continue_target=step_entry, depth=len(frames))
					body_entry = build_scoped(stmt.body, step_entry, frames, inner_loop)
					header.terminator = Terminator(kind="loop", targets=[body_entry, cont_entry], cond=stmt.cond)
					bb.terminator = Terminator(kind="jump", targets=[header.id if stmt.test_first else body_entry])
				return bb.id
			if isinstance(stmt, (I.Break, I.Continue)):
				if loop is None:
					word = "break" if isinstance(stmt, I.Break) else "continue"
					raise CfgError(f"'{word}' outside of a loop", loc=stmt.span)
				bb.statements.extend(exits_for(frames, loop.depth, stmt.span))
				target = loop.break_target if isinstance(stmt, I.Break) else loop.continue_target
				bb.terminator = Terminator(kind="jump", targets=[target])
				return bb.id
			if isinstance(stmt, I.Return):
				bb.statements.append(stmt)
				bb.terminator = Terminator(kind="return", targets=[], value=stmt.value)
				return bb.id
			bb.statements.append(stmt)
			idx += 1
		bb.terminator = Terminator(kind="jump", targets=[cont])
		return bb.id

	# Parameters belong to the function's outermost frame.
	fn_body = I.Block(
		statements=[I.Declare(pid, span=decls[pid].span) for pid in params] + list(body.statements),
		span=body.span,
		end_span=body.end_span,
	)
	entry = build_scoped(fn_body, exit_block.id, (), None)
	return FunctionCfg(
		name=name,
		blocks=blocks,
		entry=entry,
		decls=dict(decls),
		globals=list(globals),
		span=span or body.span,
	)


__all__ = ["Terminator", "BasicBlock", "FunctionCfg", "CfgError", "GLOBAL_FRAME_ID", "build_cfg"]
