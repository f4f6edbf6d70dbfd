# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
# author: Sławomir Liszniański; created: 2026-10-18
"""
cborrow: ownership and borrow checking for C sources.

The front-end (`cborrow.frontend`) parses and lowers C into per-function
CFGs; the checker (`cborrow.borrow_checker_pass`) reports moves, invalid and
dangling references. The CLI entrypoint is `cborrow.driver:main`.
"""

__all__ = []
