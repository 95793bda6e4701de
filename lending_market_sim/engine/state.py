#!/usr/bin/env python3
"""
Chain State Management

Block height and timestamp seen by every entry point. Blocks advance at a
fixed cadence so scenarios can step time deterministically.
"""


DEFAULT_GENESIS_TIME = 1_700_000_000
DEFAULT_SECONDS_PER_BLOCK = 10


class ChainState:
    """Current block and time of the simulated chain"""

    def __init__(self, genesis_time: int = DEFAULT_GENESIS_TIME,
                 seconds_per_block: int = DEFAULT_SECONDS_PER_BLOCK):
        if seconds_per_block <= 0:
            raise ValueError("seconds_per_block must be positive")
        self.genesis_time = genesis_time
        self.seconds_per_block = seconds_per_block
        self.block_height = 0
        self.timestamp = genesis_time

    def mine_blocks(self, count: int = 1):
        """Advance `count` blocks and the matching wall-clock time"""
        if count < 0:
            raise ValueError("Cannot mine a negative number of blocks")
        self.block_height += count
        self.timestamp += count * self.seconds_per_block

    def advance_time(self, seconds: int):
        """Advance time, mining as many whole blocks as fit"""
        self.mine_blocks(max(seconds // self.seconds_per_block, 1))

    def get_state_summary(self) -> dict:
        return {
            "block_height": self.block_height,
            "timestamp": self.timestamp,
            "elapsed_seconds": self.timestamp - self.genesis_time,
        }
