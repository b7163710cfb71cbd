"""Stage timing for backup and restore runs.

StageTimer prints elapsed time after each named stage and keeps the
timings so they can go into the audit log.
"""

import time


class StageTimer:
    """Prints elapsed wall-clock time after each named stage.

    Usage:
        t = StageTimer(console)
        history = load_history()
        t.mark("history")      # prints "  history  0.8s"
        upload()
        t.mark("upload")       # prints "  upload  41.2s"
    """

    def __init__(self, console, clock=time.monotonic):
        self.console = console
        self._clock = clock
        self._stage_start = clock()
        self.stages = {}

    def mark(self, label):
        now = self._clock()
        elapsed = now - self._stage_start
        self._stage_start = now
        self.stages[label] = round(elapsed, 3)
        if self.console is not None:
            self.console.print(f"  [dim]{label}  {elapsed:.1f}s[/dim]")
        return elapsed
