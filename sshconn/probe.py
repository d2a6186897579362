"""
Background reachability probes.

Each probe opens and closes a TCP connection to the profile's address and
port. Probes run on a bounded thread pool and publish ProbeResult entries
on a queue; only the event loop drains that queue and applies the results
to its profile list (merge_results), so worker threads never touch UI state.
"""
import dataclasses
import queue
import socket
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from .models import PROBING, Reachable, Unreachable
from .utils import debug_log

DEFAULT_TIMEOUT = 5.0
MIN_PROBING_DISPLAY = 0.2
DEFAULT_WORKERS = 16


@dataclass(frozen=True)
class ProbeResult:
    index: int
    host: str
    status: object


def probe_address(address, port, timeout):
    """Connect once; Reachable(elapsed) on success, Unreachable(reason) otherwise."""
    start = time.monotonic()
    try:
        with socket.create_connection((address, port), timeout=timeout):
            pass
    except socket.timeout:
        return Unreachable(f"Connection timeout after {timeout:g}s")
    except OSError as e:
        reason = e.strerror or str(e) or e.__class__.__name__
        return Unreachable(f"Connection failed: {reason}")
    return Reachable(time.monotonic() - start)


def probe_profile(profile, default_timeout=DEFAULT_TIMEOUT, min_display=MIN_PROBING_DISPLAY):
    """Probe one profile; never returns before `min_display` seconds have passed."""
    started = time.monotonic()
    address, port = profile.address(), profile.port_number()
    timeout = profile.probe_timeout(default_timeout)
    status = probe_address(address, port, timeout)
    if isinstance(status, Reachable):
        debug_log(f"PROBE: {profile.host} ({address}:{port}) reachable in {status.millis}ms")
    else:
        debug_log(f"PROBE: {profile.host} ({address}:{port}) {status.reason}")
    elapsed = time.monotonic() - started
    if elapsed < min_display:
        time.sleep(min_display - elapsed)
    return status


def merge_results(profiles, results):
    """
    Apply finished probes to the profile list.

    Results whose index is out of range, or whose index now points at a
    different host (the list was reloaded while the probe ran), are dropped.
    Returns how many results were applied.
    """
    applied = 0
    for res in results:
        if not 0 <= res.index < len(profiles):
            continue
        if profiles[res.index].host != res.host:
            continue
        profiles[res.index].status = res.status
        applied += 1
    return applied


class ProbePool:
    def __init__(self, timeout=DEFAULT_TIMEOUT, min_display=MIN_PROBING_DISPLAY,
                 max_workers=DEFAULT_WORKERS, probe_fn=probe_profile):
        self.timeout = timeout
        self.min_display = min_display
        self.results = queue.Queue()
        self.executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="probe")
        self._probe_fn = probe_fn

    def _run(self, index, profile):
        try:
            status = self._probe_fn(profile, self.timeout, self.min_display)
        except Exception as e:  # every submitted probe publishes exactly one result
            debug_log(f"PROBE: {profile.host} crashed: {e!r}")
            status = Unreachable(f"Probe error: {e}")
        self.results.put(ProbeResult(index, profile.host, status))

    def submit(self, index, profile):
        """Start probing profiles[index]; marks it Probing on the caller's list entry."""
        profile.status = PROBING
        # workers only ever see a copy
        snapshot = dataclasses.replace(profile, options=dict(profile.options))
        self.executor.submit(self._run, index, snapshot)

    def submit_all(self, profiles):
        for index, profile in enumerate(profiles):
            self.submit(index, profile)
        debug_log(f"PROBE: Started batch probe for {len(profiles)} hosts")

    def drain(self):
        """All results finished so far, without blocking."""
        out = []
        while True:
            try:
                out.append(self.results.get_nowait())
            except queue.Empty:
                break
        return out

    def shutdown(self):
        self.executor.shutdown(wait=False, cancel_futures=True)
