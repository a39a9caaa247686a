"""
Prometheus-compatible metrics for observability.

Tracks marketplace activity:
- Bids placed and bookings created (by source: bid, fixed)
- Booking state transitions (by target status)
- Settlements (released, wallet_missing) and credited amounts
- Withdrawals (completed, insufficient_funds)

Usage:
    from easyserve.lib.metrics import get_metrics_collector

    metrics = get_metrics_collector()
    metrics.increment_bookings_created(source="bid")
    metrics.increment_settlements(outcome="released")

    # Export for Prometheus
    prometheus_output = metrics.export_prometheus()
"""

from decimal import Decimal
from typing import Dict, Tuple, Union
from threading import Lock


Number = Union[int, float, Decimal]


class MetricsCollector:
    """
    Prometheus-style metrics collector for the marketplace.

    Counters:
    - bids_placed_total: Bids accepted into the engine
    - bookings_created_total: Bookings created (labels: source)
    - booking_transitions_total: Lifecycle transitions (labels: status)
    - settlements_total: Confirm-release settlements (labels: outcome)
    - wallet_credited_amount_total: Sum credited to provider wallets
    - withdrawals_total: Withdrawal attempts (labels: outcome)

    Thread-safe for concurrent increments.
    """

    def __init__(self):
        self._lock = Lock()

        # Counters: key = (metric_name, labels_tuple), value = count
        self._counters: Dict[Tuple[str, Tuple[Tuple[str, str], ...]], Number] = {}

    def _get_counter_key(self, metric_name: str, labels: Dict[str, str]) -> Tuple[str, Tuple[Tuple[str, str], ...]]:
        """Generate unique key for counter with sorted labels."""
        sorted_labels = tuple(sorted(labels.items()))
        return (metric_name, sorted_labels)

    def _increment(self, metric_name: str, labels: Dict[str, str], amount: Number = 1):
        """Thread-safe increment of counter."""
        key = self._get_counter_key(metric_name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + amount

    def _get_value(self, metric_name: str, labels: Dict[str, str]) -> Number:
        """Get current value of counter."""
        key = self._get_counter_key(metric_name, labels)
        with self._lock:
            return self._counters.get(key, 0)

    # ===== Bidding Metrics =====

    def increment_bids_placed(self, request_type: str = "bidding", amount: int = 1):
        """Increment bids placed counter."""
        self._increment("bids_placed_total", {"request_type": request_type.lower()}, amount)

    # ===== Booking Metrics =====

    def increment_bookings_created(self, source: str, amount: int = 1):
        """
        Increment bookings created counter.

        Args:
            source: How the booking came about (bid, fixed)
            amount: Increment amount (default 1)
        """
        self._increment("bookings_created_total", {"source": source.lower()}, amount)

    def increment_transitions(self, status: str, amount: int = 1):
        """Increment booking transitions into the given status."""
        self._increment("booking_transitions_total", {"status": status.lower()}, amount)

    # ===== Wallet Metrics =====

    def increment_settlements(self, outcome: str, amount: int = 1):
        """
        Increment settlements counter.

        Args:
            outcome: released, or wallet_missing for reconciliation candidates
            amount: Increment amount
        """
        self._increment("settlements_total", {"outcome": outcome.lower()}, amount)

    def add_credited_amount(self, value: Number):
        """Add a settled amount to the credited total."""
        self._increment("wallet_credited_amount_total", {}, value)

    def increment_withdrawals(self, outcome: str, amount: int = 1):
        """Increment withdrawals counter (completed, insufficient_funds)."""
        self._increment("withdrawals_total", {"outcome": outcome.lower()}, amount)

    # ===== Export =====

    def export_prometheus(self) -> str:
        """
        Export all metrics in Prometheus text format.

        Returns:
            Prometheus-compatible text output
        """
        output_lines = []

        # Group counters by metric name
        metrics_by_name: Dict[str, list] = {}
        with self._lock:
            for (metric_name, labels_tuple), value in self._counters.items():
                metrics_by_name.setdefault(metric_name, []).append((dict(labels_tuple), value))

        for metric_name in sorted(metrics_by_name.keys()):
            help_text = self._get_help_text(metric_name)
            output_lines.append(f"# HELP {metric_name} {help_text}")
            output_lines.append(f"# TYPE {metric_name} counter")

            for labels_dict, value in sorted(metrics_by_name[metric_name], key=lambda x: str(x[0])):
                if labels_dict:
                    labels_str = ",".join([f'{k}="{v}"' for k, v in sorted(labels_dict.items())])
                    output_lines.append(f"{metric_name}{{{labels_str}}} {value}")
                else:
                    output_lines.append(f"{metric_name} {value}")

            output_lines.append("")  # Blank line between metrics

        return "\n".join(output_lines)

    def _get_help_text(self, metric_name: str) -> str:
        """Get help text for metric."""
        help_texts = {
            "bids_placed_total": "Total number of bids placed on service requests",
            "bookings_created_total": "Total number of bookings created",
            "booking_transitions_total": "Total number of booking status transitions",
            "settlements_total": "Total number of payment release settlements",
            "wallet_credited_amount_total": "Total amount credited to provider wallets",
            "withdrawals_total": "Total number of wallet withdrawal attempts",
        }
        return help_texts.get(metric_name, "Counter metric")

    def get_counter_value(self, metric_name: str, labels: Dict[str, str]) -> Number:
        """
        Get current value of a specific counter.

        Args:
            metric_name: Name of the metric
            labels: Label filters

        Returns:
            Current counter value
        """
        return self._get_value(metric_name, labels)

    def reset_all(self):
        """Reset all counters (for testing)."""
        with self._lock:
            self._counters.clear()


# Global singleton instance
_metrics_collector: MetricsCollector | None = None
_metrics_lock = Lock()


def get_metrics_collector() -> MetricsCollector:
    """
    Get global metrics collector singleton.

    Returns:
        MetricsCollector instance
    """
    global _metrics_collector
    if _metrics_collector is None:
        with _metrics_lock:
            if _metrics_collector is None:
                _metrics_collector = MetricsCollector()
    return _metrics_collector


def reset_metrics():
    """Reset global metrics collector (for testing)."""
    with _metrics_lock:
        if _metrics_collector is not None:
            _metrics_collector.reset_all()
