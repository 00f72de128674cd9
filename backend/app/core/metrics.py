from collections import Counter
from threading import Lock
from typing import Counter as CounterType, Dict

_metrics: CounterType[str] = Counter()
_lock = Lock()


def _inc(key: str) -> None:
    with _lock:
        _metrics[key] += 1


def record_settlement_committed() -> None:
    _inc("settlements_committed")


def record_settlement_failure(stage: str) -> None:
    _inc("settlement_failures")
    _inc(f"settlement_failures.{stage}")


def record_coupon_redemption() -> None:
    _inc("coupon_redemptions")


def record_coupon_evaluation(eligible: bool) -> None:
    _inc("coupon_evaluations_eligible" if eligible else "coupon_evaluations_ineligible")


def snapshot() -> Dict[str, int]:
    with _lock:
        return dict(_metrics)


def reset() -> None:
    with _lock:
        _metrics.clear()
