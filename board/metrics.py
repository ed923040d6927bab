import threading
from collections import Counter
from typing import Tuple


# upper bounds in ms; "+Inf" is implied
LATENCY_BUCKETS_MS: Tuple[float, ...] = (100.0, 500.0)


class Metrics:
    """
    Process-wide counters.

    Message handlers are sync and run on FastAPI's worker threads while the
    logging middleware runs on the event loop, so every update takes the lock.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._clear()

    def _clear(self) -> None:
        self.http_requests: Counter = Counter()
        self.append_results: Counter = Counter()
        self.latency_buckets: Counter = Counter()
        self.latency_count = 0

    def reset(self) -> None:
        with self._lock:
            self._clear()

    def inc_http_request(self, path: str, status: int) -> None:
        with self._lock:
            self.http_requests[(path, str(status))] += 1

    def inc_append_result(self, result: str) -> None:
        with self._lock:
            self.append_results[result] += 1

    def observe_latency_ms(self, latency_ms: float) -> None:
        with self._lock:
            self.latency_count += 1
            for le in LATENCY_BUCKETS_MS:
                if latency_ms <= le:
                    self.latency_buckets[le] += 1

    def render(self) -> str:
        with self._lock:
            http_requests = sorted(self.http_requests.items())
            append_results = sorted(self.append_results.items())
            buckets = [(f"{le:g}", self.latency_buckets[le]) for le in LATENCY_BUCKETS_MS]
            buckets.append(("+Inf", self.latency_count))
            count = self.latency_count

        lines = [
            f'http_requests_total{{path="{path}",status="{status}"}} {value}'
            for (path, status), value in http_requests
        ]
        lines += [
            f'message_appends_total{{result="{result}"}} {value}'
            for result, value in append_results
        ]
        lines += [f'request_latency_ms_bucket{{le="{le}"}} {value}' for le, value in buckets]
        lines.append(f"request_latency_ms_count {count}")
        return "\n".join(lines) + "\n"


metrics = Metrics()

inc_http_request = metrics.inc_http_request
inc_append_result = metrics.inc_append_result
observe_latency_ms = metrics.observe_latency_ms
reset_metrics = metrics.reset
render_metrics = metrics.render
