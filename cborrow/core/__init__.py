# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
# author: Sławomir Liszniański; created: 2026-10-18
"""Shared core types: spans, diagnostics and the type table."""

__all__ = ["diagnostics", "span", "types_core"]
