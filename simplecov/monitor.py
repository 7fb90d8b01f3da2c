"""Run a program, pass its output through and report the coverage it records."""

from __future__ import annotations

import os
import subprocess
import sys
import threading
from collections.abc import Sequence
from typing import IO

from simplecov.coverage import CoverageMap, open_coverage_file

DEFAULT_SHM_FILE = "mycov_shm"
_CHUNK = 256


class Monitor:
    """Watches a coverage map while a program runs."""

    first_report_delay: float = 10.0
    report_interval: float = 300.0

    def __init__(self, coverage: CoverageMap) -> None:
        self.coverage = coverage
        self._lock = threading.Lock()

    def report(self) -> int:
        """Print and return the number of branches covered so far."""
        count = self.coverage.covered_count()
        with self._lock:
            print(f"[Periodic] Branches covered: {count}", flush=True)
        return count

    def _periodic(self, stop: threading.Event) -> None:
        delay = self.first_report_delay
        while not stop.wait(delay):
            self.report()
            delay = self.report_interval

    def _forward(self, chunk: bytes) -> None:
        with self._lock:
            out = sys.stdout
            out.flush()
            buffer = getattr(out, "buffer", None)
            if buffer is not None:
                buffer.write(chunk)
                buffer.flush()
            else:
                out.write(chunk.decode(errors="replace"))
                out.flush()

    def _pump(self, stream: IO[bytes]) -> None:
        fd = stream.fileno()
        while chunk := os.read(fd, _CHUNK):
            self._forward(chunk)

    def run(self, argv: Sequence[str]) -> int:
        """Run ``argv`` to completion and return its exit status.

        The coverage map is cleared first and reported at the start, at the
        end and periodically while the program runs. Interrupting the monitor
        reports once more and returns 0.
        """
        argv = list(argv)
        if not argv:
            raise ValueError("no program to run")
        self.coverage.reset()
        self.report()
        stop = threading.Event()
        timer = threading.Thread(target=self._periodic, args=(stop,), daemon=True)
        timer.start()
        try:
            try:
                proc = subprocess.Popen(
                    argv, stdout=subprocess.PIPE, stderr=subprocess.STDOUT
                )
            except OSError as exc:
                print(f"exec failed: {exc}", file=sys.stderr)
                returncode = 1
            else:
                try:
                    assert proc.stdout is not None
                    self._pump(proc.stdout)
                    proc.stdout.close()
                    returncode = proc.wait()
                except KeyboardInterrupt:
                    returncode = 0
        finally:
            stop.set()
            timer.join()
        self.report()
        return returncode


def main(argv: Sequence[str] | None = None) -> int:
    """Command-line entry point: ``monitor <program> [args...]``."""
    if argv is None:
        argv = sys.argv[1:]
    argv = list(argv)
    if not argv:
        print(f"Usage: {os.path.basename(sys.argv[0])} <program_to_run>", file=sys.stderr)
        return 1
    path = os.environ.get("SIMPLECOV_SHM", DEFAULT_SHM_FILE)
    try:
        coverage = open_coverage_file(path)
    except OSError as exc:
        print(f"cannot open coverage map {path}: {exc}", file=sys.stderr)
        return 1
    try:
        Monitor(coverage).run(argv)
    finally:
        coverage.close()
        try:
            os.remove(path)
        except OSError:
            pass
    return 0


if __name__ == "__main__":
    sys.exit(main())