"""Scan window arithmetic for normal and repair passes.

All windows end at ``target = head - confirmations``, computed once per chain
per pass. Only the start differs:

Normal mode resumes from the stored cursor. A stream without a cursor starts
from the best known origin and falls back to the lookback window.

Repair mode rewinds the cursor by a fixed number of blocks but never before
the repair lookback window, so it re-absorbs recent history without a full
rescan.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

ScanMode = Literal["normal", "repair"]


@dataclass(frozen=True)
class WindowPolicy:
    lookback_blocks: int
    repair_lookback_blocks: int
    repair_rewind_blocks: int

    def lookback_start(self, target: int, mode: ScanMode) -> int:
        lookback = self.repair_lookback_blocks if mode == "repair" else self.lookback_blocks
        return max(0, target - lookback)

    def repair_start(self, cursor: int, target: int) -> int:
        return max(self.lookback_start(target, "repair"), max(0, cursor - self.repair_rewind_blocks))

    def registry_start(
        self,
        *,
        mode: ScanMode,
        cursor: int,
        target: int,
        factory_start_block: int,
    ) -> int:
        """First block of the factory scan.

        A normal pass never reaches further back than the lookback window,
        even when resuming from an old cursor.
        """
        if mode == "repair":
            return self.repair_start(cursor, target)
        window_start = self.lookback_start(target, mode)
        if cursor > 0:
            baseline = cursor
        elif factory_start_block > 0:
            baseline = factory_start_block
        else:
            baseline = window_start
        return max(baseline, window_start)

    def campaign_start(
        self,
        *,
        mode: ScanMode,
        cursor: int,
        target: int,
        created_block: int,
        factory_start_block: int = 0,
    ) -> int:
        """First block of a campaign's trade scan.

        A normal pass for a campaign with no cursor starts at its creation
        block so its full history is indexed even outside the lookback window.
        """
        if mode == "repair":
            return self.repair_start(cursor, target)
        if cursor > 0:
            return cursor
        if created_block > 0:
            return created_block
        if factory_start_block > 0:
            return factory_start_block
        return self.lookback_start(target, mode)


def chunk_ranges(from_block: int, to_block: int, chunk_size: int) -> list[tuple[int, int]]:
    """Split an inclusive block range into consecutive chunks."""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    return [(start, min(to_block, start + chunk_size - 1)) for start in range(from_block, to_block + 1, chunk_size)]
