"""Bounded candidate sampling over CIDR blocks."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator

from .ip_utils import CidrBlock, parse_cidrs, step_address

DEFAULT_SAMPLING_THRESHOLD = 50_000
DEFAULT_ADDRESS_BUDGET = 50_000
DEFAULT_MIN_PER_BLOCK = 10


@dataclass(slots=True, frozen=True)
class SamplePlan:
    """How a set of blocks will be expanded into candidates."""

    blocks: tuple[CidrBlock, ...]
    total_space: int
    sampled: bool
    per_block_cap: int | None
    budget: int

    def stride_for(self, block: CidrBlock) -> int:
        if self.per_block_cap and block.size > self.per_block_cap:
            return block.size // self.per_block_cap
        return 1

    def limit_for(self, block: CidrBlock) -> int:
        if self.per_block_cap is None:
            return block.size
        return min(block.size, self.per_block_cap)

    @property
    def estimated_count(self) -> int:
        return min(self.budget, sum(self.limit_for(block) for block in self.blocks))


def plan_sample(
    cidrs: str | Iterable[str | CidrBlock] | None,
    *,
    threshold: int = DEFAULT_SAMPLING_THRESHOLD,
    budget: int = DEFAULT_ADDRESS_BUDGET,
    min_per_block: int = DEFAULT_MIN_PER_BLOCK,
) -> SamplePlan:
    """Decide between dense enumeration and even sampling for ``cidrs``."""
    blocks = tuple(parse_cidrs(cidrs))
    total_space = sum(block.size for block in blocks)
    budget = max(0, int(budget))

    sampled = total_space > threshold
    per_block_cap: int | None = None
    if sampled and blocks:
        per_block_cap = max(int(min_per_block), budget // len(blocks), 1)

    return SamplePlan(
        blocks=blocks,
        total_space=total_space,
        sampled=sampled,
        per_block_cap=per_block_cap,
        budget=budget,
    )


def iter_plan(plan: SamplePlan) -> Iterator[str]:
    """Yield the candidates of ``plan``, stopping as soon as the budget is spent."""
    emitted = 0
    for block in plan.blocks:
        stride = plan.stride_for(block)
        for index in range(plan.limit_for(block)):
            if emitted >= plan.budget:
                return
            yield step_address(block.base, index * stride)
            emitted += 1


def iter_candidates(
    cidrs: str | Iterable[str | CidrBlock] | None,
    *,
    threshold: int = DEFAULT_SAMPLING_THRESHOLD,
    budget: int = DEFAULT_ADDRESS_BUDGET,
    min_per_block: int = DEFAULT_MIN_PER_BLOCK,
) -> Iterator[str]:
    plan = plan_sample(cidrs, threshold=threshold, budget=budget, min_per_block=min_per_block)
    return iter_plan(plan)


def sample_addresses(
    cidrs: str | Iterable[str | CidrBlock] | None,
    *,
    threshold: int = DEFAULT_SAMPLING_THRESHOLD,
    budget: int = DEFAULT_ADDRESS_BUDGET,
    min_per_block: int = DEFAULT_MIN_PER_BLOCK,
) -> list[str]:
    """Expand ``cidrs`` into a bounded list of IPv4 candidates.

    Small inputs are enumerated densely. When the combined address space
    exceeds ``threshold`` every block contributes at most
    ``max(min_per_block, budget // block_count)`` evenly spaced addresses.
    The total never exceeds ``budget``.
    """
    return list(iter_candidates(cidrs, threshold=threshold, budget=budget, min_per_block=min_per_block))
