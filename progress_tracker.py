"""
Progress Tracker for Alt Text Generator
Accumulates and displays totals across a sequence of batch calls.
"""

import time
from typing import Any, Dict


class ProgressTracker:
    """Tracks totals for a multi-call run driven by the caller."""

    def __init__(self, start_offset: int = 0):
        """
        Initialize progress tracker.

        Args:
            start_offset: Offset the run starts from
        """
        self.start_offset = start_offset
        self.offset = start_offset
        self.batches = 0
        self.processed_images = 0
        self.skipped_images = 0
        self.fetched_images = 0
        self.failed_images = 0
        self.finished = False
        self.start_time = time.time()

    def update(self, response: Dict[str, Any], failed: int = 0):
        """
        Add one batch response to the totals.

        Args:
            response: Batch endpoint response body
            failed: Number of assets in the batch that hit a read/write error
        """
        self.batches += 1
        self.processed_images += response['processed']
        self.skipped_images += response['skipped']
        self.fetched_images += response['count']
        self.failed_images += failed
        self.offset = response['next_offset']
        self.finished = not response['more']

    def display(self):
        """Display current progress."""
        elapsed = self._format_time(time.time() - self.start_time)

        print(f"\r[batch {self.batches} | offset {self.offset}] "
              f"✓ {self.processed_images} processed | "
              f"↷ {self.skipped_images} skipped | "
              f"✗ {self.failed_images} failed | "
              f"{elapsed}", end='', flush=True)

    def display_summary(self):
        """Display final summary."""
        elapsed_str = self._format_time(time.time() - self.start_time)

        print("\n")
        print("=" * 60)
        print("PROCESSING COMPLETE" if self.finished else "PROCESSING STOPPED")
        print("=" * 60)
        print(f"Batches run:      {self.batches}")
        print(f"Assets fetched:   {self.fetched_images}")
        print(f"Successfully processed: {self.processed_images}")
        print(f"Skipped:          {self.skipped_images}")
        print(f"Failed:           {self.failed_images}")
        print(f"Time elapsed:     {elapsed_str}")

        if not self.finished:
            print(f"\nNext offset: {self.offset}")
            print("Resume with --offset to continue from here.")

        print("=" * 60)

    @staticmethod
    def _format_time(seconds: float) -> str:
        """
        Format seconds into human-readable time.

        Args:
            seconds: Time in seconds

        Returns:
            Formatted time string
        """
        if seconds < 60:
            return f"{int(seconds)}s"
        elif seconds < 3600:
            minutes = int(seconds / 60)
            secs = int(seconds % 60)
            return f"{minutes}m {secs}s"
        else:
            hours = int(seconds / 3600)
            minutes = int((seconds % 3600) / 60)
            return f"{hours}h {minutes}m"
