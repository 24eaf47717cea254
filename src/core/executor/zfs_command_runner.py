import logging
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import aiofiles

from core.util.zfs_name_util import get_pool_name

logger = logging.getLogger(__name__)


class ZfsCommandRunner(Protocol):
    """
    The only seam through which the storage utility is reached.

    In dry-run mode `run_mutation` reports failure without side effects; callers
    treat that as expected rather than as an error.
    """

    dry_run: bool

    def run_query(self, verb: str, args: str) -> AsyncIterator[str]: ...

    async def run_mutation(self, verb: str, args: str) -> bool: ...


@dataclass
class MutationRecord:
    verb: str
    args: str


@dataclass
class InMemoryZfsCommandRunner:
    """
    Runner backed by canned query output that records every mutation request.

    Used for planning runs against captured output and in tests. Mutations whose
    verb is listed in `failing_verbs` report failure.
    """

    lines: list[str] = field(default_factory=list)
    dry_run: bool = False
    failing_verbs: set[str] = field(default_factory=set)
    mutations: list[MutationRecord] = field(default_factory=list)

    async def run_query(self, verb: str, args: str) -> AsyncIterator[str]:
        target = args.rsplit(" ", 1)[-1] if args else ""
        for line in self.lines:
            if not target or _belongs_to(line, target):
                yield line

    async def run_mutation(self, verb: str, args: str) -> bool:
        self.mutations.append(MutationRecord(verb, args))
        if self.dry_run:
            logger.info(f"[DryRun] Would run: {verb} {args}")
            return False
        return verb not in self.failing_verbs


class DumpFileZfsCommandRunner(InMemoryZfsCommandRunner):
    """In-memory runner whose query output is read from a captured property dump file."""

    def __init__(self, dump_path: str | Path, dry_run: bool = True):
        super().__init__(dry_run=dry_run)
        self.dump_path = Path(dump_path)

    async def load(self) -> None:
        async with aiofiles.open(self.dump_path, "r", encoding="utf-8") as f:
            self.lines = [line.rstrip("\n") async for line in f if line.strip()]
        logger.info(f"[Runner] Loaded {len(self.lines)} lines from {self.dump_path}")


def _belongs_to(line: str, target: str) -> bool:
    object_name = line.split("\t", 1)[0].strip()
    return object_name == target or object_name.startswith((f"{target}/", f"{target}@"))


def pool_names_from_lines(lines: Iterable[str]) -> list[str]:
    """Distinct pool names appearing in raw output, sorted."""
    pools = {get_pool_name(line.split("\t", 1)[0].strip()) for line in lines if line.strip()}
    return sorted(pools)
