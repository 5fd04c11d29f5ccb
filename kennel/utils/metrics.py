"""
Prometheus Metrics

In-process metrics rendered in Prometheus text format:
- HTTP request metrics (count, duration, status codes)
- Reservation metrics (holds by outcome, FULL rejections, sweeps)
"""

from typing import Dict
from collections import defaultdict
from threading import Lock


def _label_key(labels: tuple, label_values: dict) -> tuple:
    return tuple(label_values.get(l, '') for l in labels)


class Counter:
    """Simple counter metric."""

    def __init__(self, name: str, description: str, labels: tuple = ()):
        self.name = name
        self.description = description
        self.labels = labels
        self._values: Dict[tuple, float] = defaultdict(float)
        self._lock = Lock()

    def inc(self, value: float = 1, **label_values):
        key = _label_key(self.labels, label_values)
        with self._lock:
            self._values[key] += value

    def get_all(self) -> Dict[tuple, float]:
        with self._lock:
            return dict(self._values)


class Gauge:
    """Simple gauge metric (can go up and down)."""

    def __init__(self, name: str, description: str, labels: tuple = ()):
        self.name = name
        self.description = description
        self.labels = labels
        self._values: Dict[tuple, float] = defaultdict(float)
        self._lock = Lock()

    def set(self, value: float, **label_values):
        key = _label_key(self.labels, label_values)
        with self._lock:
            self._values[key] = value

    def get_all(self) -> Dict[tuple, float]:
        with self._lock:
            return dict(self._values)


class Histogram:
    """Simple histogram metric."""

    DEFAULT_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, float('inf'))

    def __init__(self, name: str, description: str, labels: tuple = (), buckets: tuple = None):
        self.name = name
        self.description = description
        self.labels = labels
        self.buckets = buckets or self.DEFAULT_BUCKETS
        self._counts: Dict[tuple, Dict[float, int]] = defaultdict(lambda: defaultdict(int))
        self._sums: Dict[tuple, float] = defaultdict(float)
        self._totals: Dict[tuple, int] = defaultdict(int)
        self._lock = Lock()

    def observe(self, value: float, **label_values):
        key = _label_key(self.labels, label_values)
        with self._lock:
            self._sums[key] += value
            self._totals[key] += 1
            for bucket in self.buckets:
                if value <= bucket:
                    self._counts[key][bucket] += 1

    def get_all(self) -> Dict:
        with self._lock:
            return {
                'counts': {k: dict(v) for k, v in self._counts.items()},
                'sums': dict(self._sums),
                'totals': dict(self._totals)
            }


# ================================
# APPLICATION METRICS
# ================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labels=("method", "path", "status_code")
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    labels=("method", "path")
)

holds_total = Counter(
    "holds_total",
    "Reservation hold requests by outcome",
    labels=("service", "outcome")
)

hold_transitions_total = Counter(
    "hold_transitions_total",
    "Reservation hold status transitions",
    labels=("to_status",)
)

bookings_total = Counter(
    "bookings_total",
    "Bookings confirmed",
    labels=("service", "pricing_model")
)

sweep_runs_total = Counter(
    "sweep_runs_total",
    "Expired-hold sweep runs",
    labels=("status",)
)

sweep_last_reclaimed = Gauge(
    "sweep_last_reclaimed",
    "Holds reclaimed by the most recent sweep"
)


def _format_labels(labels: tuple, key: tuple) -> str:
    return ",".join(f'{k}="{v}"' for k, v in zip(labels, key))


def _format_simple(lines: list, metric, metric_type: str) -> None:
    lines.append(f"# HELP {metric.name} {metric.description}")
    lines.append(f"# TYPE {metric.name} {metric_type}")
    for key, value in metric.get_all().items():
        if metric.labels:
            lines.append(f"{metric.name}{{{_format_labels(metric.labels, key)}}} {value}")
        else:
            lines.append(f"{metric.name} {value}")


def format_prometheus_metrics() -> str:
    """Format all metrics in Prometheus text format."""
    lines = []

    _format_simple(lines, http_requests_total, "counter")

    hist = http_request_duration_seconds
    hist_data = hist.get_all()
    lines.append(f"# HELP {hist.name} {hist.description}")
    lines.append(f"# TYPE {hist.name} histogram")
    for key in hist_data['sums'].keys():
        label_str = _format_labels(hist.labels, key)
        lines.append(f'{hist.name}_sum{{{label_str}}} {hist_data["sums"][key]}')
        lines.append(f'{hist.name}_count{{{label_str}}} {hist_data["totals"][key]}')

    _format_simple(lines, holds_total, "counter")
    _format_simple(lines, hold_transitions_total, "counter")
    _format_simple(lines, bookings_total, "counter")
    _format_simple(lines, sweep_runs_total, "counter")
    _format_simple(lines, sweep_last_reclaimed, "gauge")

    return "\n".join(lines) + "\n"


# ================================
# CONVENIENCE FUNCTIONS
# ================================

def record_http_request(method: str, path: str, status_code: int, duration: float):
    http_requests_total.inc(method=method, path=path, status_code=str(status_code))
    http_request_duration_seconds.observe(duration, method=method, path=path)


def record_hold_outcome(service: str, outcome: str):
    """outcome: created / replayed / full"""
    holds_total.inc(service=service, outcome=outcome)


def record_hold_transition(to_status: str, count: int = 1):
    if count:
        hold_transitions_total.inc(count, to_status=to_status)


def record_booking_confirmed(service: str, pricing_model: str):
    bookings_total.inc(service=service, pricing_model=pricing_model)


def record_sweep(success: bool, reclaimed: int = 0):
    sweep_runs_total.inc(status="success" if success else "error")
    if success:
        sweep_last_reclaimed.set(reclaimed)
