from security.metrics_store import MAX_VIOLATIONS, MetricsStore
from security.models import BLACKLIST, Violation
from utils.utils import to_iso

from helpers import START_TS

DAY = 24 * 60 * 60


def _violation(i: int) -> Violation:
    return Violation(
        type=BLACKLIST, crawler_type="GPTBot", ip=f"10.0.{i // 256}.{i % 256}",
        user_agent="GPTBot", path="/", timestamp=to_iso(START_TS + i), details={"seq": i},
    )


def test_violation_log_is_capped():
    """Ghi 1050 vi phạm → còn đúng 1000, 50 bản ghi cũ nhất bị đẩy ra"""
    store = MetricsStore()
    for i in range(1050):
        store.record_violation(None, _violation(i))

    violations = store.violations()
    assert len(violations) == MAX_VIOLATIONS == 1000
    assert violations[0].details["seq"] == 50
    assert violations[-1].details["seq"] == 1049
    # Bộ đếm tổng không bị giới hạn
    assert store.total_violations == 1050

def test_get_or_create_returns_same_record():
    store = MetricsStore()
    first = store.get_or_create("1.2.3.4", "GPTBot", START_TS)
    second = store.get_or_create("1.2.3.4", "GPTBot", START_TS + 10)

    assert first is second
    assert first.request_count == 0
    assert first.last_request == to_iso(START_TS)
    assert "1.2.3.4:GPTBot" in store
    assert len(store) == 1

def test_record_violation_with_metrics():
    """Có metrics → ghi vào cả danh sách của crawler lẫn nhật ký toàn cục"""
    store = MetricsStore()
    metrics = store.get_or_create("1.2.3.4", "GPTBot", START_TS)
    store.record_violation(metrics, _violation(1))
    store.record_violation(None, _violation(2))

    assert len(metrics.violations) == 1
    assert len(store.violations()) == 2

def test_cleanup_removes_stale_entries():
    """lastRequest 8 ngày trước → bị xoá; 6 ngày trước → giữ lại"""
    store = MetricsStore()
    now = START_TS + 30 * DAY
    store.get_or_create("1.1.1.1", "GPTBot", now - 8 * DAY)
    store.get_or_create("2.2.2.2", "GPTBot", now - 6 * DAY)
    store.timestamps("1.1.1.1", "GPTBot").append(int((now - 8 * DAY) * 1000))

    assert store.cleanup(now) == 1
    assert "1.1.1.1:GPTBot" not in store
    assert "1.1.1.1:GPTBot" not in store._timestamps
    assert "2.2.2.2:GPTBot" in store

    # Gọi lại không xoá thêm
    assert store.cleanup(now) == 0

def test_snapshots_do_not_share_violations():
    store = MetricsStore()
    metrics = store.get_or_create("1.2.3.4", "GPTBot", START_TS)
    snapshot = store.all_metrics()[0]
    store.record_violation(metrics, _violation(1))

    assert snapshot.violations == []
    assert len(store.all_metrics()[0].violations) == 1

def test_reset():
    store = MetricsStore()
    store.get_or_create("1.2.3.4", "GPTBot", START_TS)
    store.record_violation(None, _violation(1))

    store.reset_violations()
    assert store.violations() == []
    assert len(store) == 1

    store.reset()
    assert len(store) == 0
    assert store.total_violations == 0
