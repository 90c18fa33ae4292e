"""
In-memory metrics registry rendered in Prometheus text format.
"""
import threading
import time
from collections import defaultdict
from typing import Dict, List, Optional, Tuple


class MetricsRegistry:
    """Request counters plus the chat counters and gauges."""

    def __init__(self):
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        self.http_requests: Dict[Tuple[str, str, int], int] = defaultdict(int)
        self.http_duration: Dict[Tuple[str, str], List[float]] = defaultdict(lambda: [0.0, 0])
        self.messages_sent = 0
        self.read_state_failures = 0
        self.live_subscriptions = 0
        self.startup_time: Optional[float] = None

    def record_request(self, method: str, path: str, status_code: int, duration: float) -> None:
        with self._lock:
            self.http_requests[(method, path, status_code)] += 1
            totals = self.http_duration[(method, path)]
            totals[0] += duration
            totals[1] += 1

    def message_sent(self) -> None:
        with self._lock:
            self.messages_sent += 1

    def read_state_failed(self) -> None:
        with self._lock:
            self.read_state_failures += 1

    def subscription_opened(self) -> None:
        with self._lock:
            self.live_subscriptions += 1

    def subscription_closed(self) -> None:
        with self._lock:
            self.live_subscriptions = max(0, self.live_subscriptions - 1)

    def set_startup_time(self) -> None:
        self.startup_time = time.time()

    def render(self, version: str) -> str:
        """Prometheus exposition text."""
        with self._lock:
            lines = [
                "# HELP app_info Application information",
                "# TYPE app_info gauge",
                f'app_info{{version="{version}"}} 1',
                "",
            ]

            if self.startup_time:
                lines += [
                    "# HELP app_start_time_seconds Unix timestamp when the app started",
                    "# TYPE app_start_time_seconds gauge",
                    f"app_start_time_seconds {self.startup_time:.3f}",
                    "",
                ]

            lines += [
                "# HELP http_requests_total Total number of HTTP requests",
                "# TYPE http_requests_total counter",
            ]
            for (method, path, status), count in sorted(self.http_requests.items()):
                lines.append(f'http_requests_total{{method="{method}",path="{path}",status="{status}"}} {count}')
            lines.append("")

            lines += [
                "# HELP http_request_duration_seconds HTTP request duration in seconds",
                "# TYPE http_request_duration_seconds summary",
            ]
            for (method, path), (total, count) in sorted(self.http_duration.items()):
                lines.append(f'http_request_duration_seconds_sum{{method="{method}",path="{path}"}} {total:.6f}')
                lines.append(f'http_request_duration_seconds_count{{method="{method}",path="{path}"}} {count}')
            lines.append("")

            lines += [
                "# HELP chat_messages_sent_total Messages persisted by the send operation",
                "# TYPE chat_messages_sent_total counter",
                f"chat_messages_sent_total {self.messages_sent}",
                "",
                "# HELP chat_read_state_failures_total Read-state updates that failed and were skipped",
                "# TYPE chat_read_state_failures_total counter",
                f"chat_read_state_failures_total {self.read_state_failures}",
                "",
                "# HELP chat_live_subscriptions Open live delivery subscriptions",
                "# TYPE chat_live_subscriptions gauge",
                f"chat_live_subscriptions {self.live_subscriptions}",
            ]

        return "\n".join(lines) + "\n"


metrics = MetricsRegistry()
