"""Chunk planning for big uploads.

The planner is a pure function: given an artifact size and a SizePolicy it
decides how many chunks to send and how large each one is. The adjustment
order matters and mirrors what the hosting API's big-upload endpoint
expects: cap by max size first, then raise to the minimum size, then force
the minimum number of chunks.
"""

from dataclasses import dataclass
from typing import Iterator

from neko_deploy.errors import ChunkPlanError, ConfigError

MiB = 1024 * 1024

DEFAULT_MAX_CHUNK_SIZE = 100 * MiB
DEFAULT_MIN_CHUNK_SIZE = 10 * MiB
DEFAULT_MIN_CHUNKS = 5


def _ceil_div(a: int, b: int) -> int:
    return -(-a // b)


@dataclass(frozen=True)
class SizePolicy:
    max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE
    min_chunk_size: int = DEFAULT_MIN_CHUNK_SIZE
    min_chunks: int = DEFAULT_MIN_CHUNKS

    def __post_init__(self) -> None:
        for name in ("max_chunk_size", "min_chunk_size", "min_chunks"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise ConfigError(
                    f"{name} must be a positive integer, got {value!r}."
                )


@dataclass(frozen=True)
class ChunkPlan:
    total_size: int
    chunk_size: int
    chunk_count: int


@dataclass(frozen=True)
class ChunkDescriptor:
    index: int
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start


def plan_chunks(total_size: int, policy: SizePolicy) -> ChunkPlan:
    """Compute the chunk layout for an artifact of ``total_size`` bytes.

    Empty artifacts are rejected: a zip archive always has at least its
    end-of-central-directory record, so a zero-byte artifact means the
    archive step went wrong.
    """
    if total_size < 0:
        raise ChunkPlanError(f"total_size must be >= 0, got {total_size}.")
    if total_size == 0:
        raise ChunkPlanError("Cannot plan chunks for an empty artifact.")

    chunk_count = _ceil_div(total_size, policy.max_chunk_size)
    chunk_size = _ceil_div(total_size, chunk_count)

    if chunk_size < policy.min_chunk_size:
        chunk_size = policy.min_chunk_size
        chunk_count = _ceil_div(total_size, chunk_size)

    if chunk_count < policy.min_chunks:
        chunk_count = policy.min_chunks
        chunk_size = _ceil_div(total_size, chunk_count)

    return ChunkPlan(
        total_size=total_size,
        chunk_size=chunk_size,
        chunk_count=chunk_count,
    )


def iter_chunks(plan: ChunkPlan) -> Iterator[ChunkDescriptor]:
    """Yield byte ranges for every chunk of ``plan`` in index order.

    Ranges are clamped to ``total_size``. When min_chunks forces more chunks
    than there are bytes to fill, the trailing ranges are empty.
    """
    for index in range(plan.chunk_count):
        start = min(index * plan.chunk_size, plan.total_size)
        end = min(start + plan.chunk_size, plan.total_size)
        yield ChunkDescriptor(index=index, start=start, end=end)
