"""Ref resolution: which refs a gate probes, and in what order.

Three modes share one decision tree:

- ``single``: first attempt probes the default branch, retries probe the PR merge ref.
  A missing ref is fatal.
- ``all``: first attempt probes the default branch, retries probe the PR head and merge
  refs and keep every result.
- ``fallback``: retries walk merge -> head, moving on when a ref is empty or missing.
  The default branch is appended to the chain but only consulted when an earlier ref
  was reported missing (no merge commit yet, or no analysis uploaded for it yet).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Callable, Generic, Iterable, TypeVar

from . import actions
from .errors import ConfigError, NotFoundError

if TYPE_CHECKING:
    from .config import PolicyConfig

T = TypeVar("T")


class RefMode(str, Enum):
    SINGLE = "single"
    ALL = "all"
    FALLBACK = "fallback"


def pr_merge_ref(pull_request: int) -> str:
    return f"refs/pull/{pull_request}/merge"


def pr_head_ref(pull_request: int) -> str:
    return f"refs/pull/{pull_request}/head"


@dataclass(frozen=True)
class RefResolution(Generic[T]):
    """Outcome of probing a ref set: the ref that answered, its items, refs reported missing."""

    ref: str | None
    items: list[T] = field(default_factory=list)
    missing: tuple[str, ...] = ()

    @property
    def found(self) -> bool:
        return self.ref is not None


class RefStrategy:
    def __init__(self, mode: RefMode | str = RefMode.SINGLE) -> None:
        self.mode = RefMode(mode)

    @classmethod
    def for_config(cls, config: "PolicyConfig") -> "RefStrategy":
        return cls(config.ref_mode)

    def ref_set(self, config: "PolicyConfig") -> tuple[str, ...]:
        """Return the ordered, never-empty refs to probe for this run."""
        if config.attempt == 1:
            if not config.default_branch:
                raise ConfigError("default_branch is required on the first attempt")
            return (config.default_branch,)

        merge = pr_merge_ref(config.pull_request)
        head = pr_head_ref(config.pull_request)
        if self.mode is RefMode.SINGLE:
            return (merge,)
        if self.mode is RefMode.ALL:
            return (head, merge)
        chain = [merge, head]
        if config.default_branch and config.default_branch not in chain:
            chain.append(config.default_branch)
        return tuple(chain)

    def _is_default_fallback(self, config: "PolicyConfig", refs: tuple[str, ...], index: int) -> bool:
        return (
            self.mode is RefMode.FALLBACK
            and index > 0
            and index == len(refs) - 1
            and refs[index] == config.default_branch
        )

    def probe(self, config: "PolicyConfig", query: Callable[[str], Iterable[T]]) -> RefResolution[T]:
        """Query refs in order and stop at the first non-empty answer.

        ``NotFoundError`` moves the chain forward only in fallback mode; in every other
        mode, and for every other error, it propagates.
        """
        refs = self.ref_set(config)
        missing: list[str] = []
        for index, ref in enumerate(refs):
            if self._is_default_fallback(config, refs, index) and not missing:
                actions.debug(f"Skipping default branch fallback {ref}: no ref was reported missing")
                break
            try:
                items = list(query(ref))
            except NotFoundError as exc:
                if self.mode is not RefMode.FALLBACK:
                    raise
                actions.warning(f"Ref {ref} not found, trying next ref: {exc}")
                missing.append(ref)
                continue
            if items:
                return RefResolution(ref=ref, items=items, missing=tuple(missing))
            actions.info(f"No results for ref {ref}")
        return RefResolution(ref=None, items=[], missing=tuple(missing))
