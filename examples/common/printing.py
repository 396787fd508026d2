# SPDX-License-Identifier: Apache-2.0
"""
Tiny pretty-print helpers for the examples.

Includes:
  • box          boxed section headers
  • print_kv     aligned key/value output
  • print_hits   one line per query match
"""
from __future__ import annotations

import json
import shutil
from typing import Any, Iterable, Mapping, Sequence, Tuple, Union

__all__ = ["box", "print_kv", "print_hits"]


def _term_width(default: int = 100) -> int:
    try:
        cols = shutil.get_terminal_size((default, 20)).columns
    except Exception:
        cols = default
    return max(40, min(cols, 200))


def box(title: str, *, fill: str = "─") -> None:
    """Print a single-line boxed title."""
    width = _term_width()
    title = f" {title.strip()} "
    bar = fill * min(len(title), width - 4)
    print(f"\n┌{bar}┐")
    print(f"│{title}│")
    print(f"└{bar}┘\n")


def print_kv(
    pairs: Union[Mapping[str, Any], Sequence[Tuple[str, Any]]],
    *,
    indent: int = 2,
) -> None:
    """Print aligned key/value pairs."""
    items = list(pairs.items()) if isinstance(pairs, Mapping) else list(pairs)
    if not items:
        return
    k_width = max(len(str(k)) for k, _ in items)
    for k, v in items:
        print(" " * indent + f"{str(k).rjust(k_width)}: {v}")


def print_hits(hits: Iterable[Any], *, indent: int = 2) -> None:
    """Print QueryResult-like objects (id, score, metadata)."""
    for hit in hits:
        meta = json.dumps(getattr(hit, "metadata", {}) or {}, ensure_ascii=False, sort_keys=True)
        print(" " * indent + f"id={hit.id:<10} score={hit.score:.4f} meta={meta}")
