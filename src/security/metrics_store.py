import threading
from collections import deque
from typing import Deque, Dict, List, Optional

from security.keyspace import k_crawler
from security.models import CrawlerMetrics, Violation
from utils.utils import from_iso, to_iso

"""
Metrics Store (in-memory)
- Giữ số liệu theo cặp (IP, loại crawler), nhật ký timestamp request (epoch ms) theo cặp đó,
  và nhật ký vi phạm toàn cục (tối đa MAX_VIOLATIONS bản ghi gần nhất, cũ nhất bị đẩy ra trước).
- Dữ liệu chỉ sống trong tiến trình: khởi động lại là mất, nhiều instance thì mỗi instance đếm riêng.
- Không có luồng dọn dẹp nền: cleanup() chỉ chạy khi được gọi (API quản trị / cron).
- Một RLock duy nhất bảo vệ toàn bộ map, vì FastAPI chạy các endpoint `def` trong threadpool
  song song với middleware trên event loop.
"""

# Số vi phạm tối đa giữ trong nhật ký toàn cục
MAX_VIOLATIONS = 1000

# Crawler không có request nào trong 7 ngày sẽ bị xoá khi cleanup
METRICS_RETENTION_SECONDS = 7 * 24 * 60 * 60


class MetricsStore:

    def __init__(self, max_violations: int = MAX_VIOLATIONS,
                 retention_seconds: int = METRICS_RETENTION_SECONDS):
        self.lock = threading.RLock()
        self.max_violations = max_violations
        self.retention_seconds = retention_seconds

        self._metrics: Dict[str, CrawlerMetrics] = {}
        self._timestamps: Dict[str, Deque[int]] = {}
        # deque(maxlen) tự đẩy bản ghi cũ nhất ra khi vượt ngưỡng -> không bao giờ quá max_violations
        self._violations: Deque[Violation] = deque(maxlen=max_violations)
        # Tổng số vi phạm đã ghi từ lúc khởi tạo (không bị giới hạn bởi max_violations)
        self.total_violations = 0

    def get_or_create(self, ip: str, crawler_type: str, now: float) -> CrawlerMetrics:
        """
        Lấy số liệu của crawler; nếu chưa có thì tạo bản ghi rỗng và lưu vào store.
        - now: epoch (giây), dùng làm lastRequest ban đầu
        """
        key = k_crawler(ip, crawler_type)
        with self.lock:
            metrics = self._metrics.get(key)
            if metrics is None:
                metrics = CrawlerMetrics(ip=ip, crawler_type=crawler_type, last_request=to_iso(now))
                self._metrics[key] = metrics
            return metrics

    def timestamps(self, ip: str, crawler_type: str) -> Deque[int]:
        """Nhật ký timestamp (ms) của crawler, sắp theo thời gian tăng dần"""
        key = k_crawler(ip, crawler_type)
        with self.lock:
            return self._timestamps.setdefault(key, deque())

    def record_violation(self, metrics: Optional[CrawlerMetrics], violation: Violation) -> None:
        """
        Ghi vi phạm vào danh sách của crawler (nếu có metrics) và vào nhật ký toàn cục.
        Các vi phạm không gắn với rate limit (blacklist, pattern, ...) chỉ ghi vào nhật ký toàn cục.
        """
        with self.lock:
            if metrics is not None:
                metrics.violations.append(violation)
            self._violations.append(violation)
            self.total_violations += 1

    def violations(self) -> List[Violation]:
        with self.lock:
            return list(self._violations)

    def all_metrics(self) -> List[CrawlerMetrics]:
        with self.lock:
            return [m.snapshot() for m in self._metrics.values()]

    def cleanup(self, now: float) -> int:
        """
        Xoá crawler có lastRequest cũ hơn retention_seconds (kèm nhật ký timestamp của nó).
        Nhật ký vi phạm đã luôn được giới hạn ở max_violations nên không cần cắt thêm.
        Trả về số crawler đã xoá. Gọi nhiều lần cũng không sao.
        """
        cutoff = now - self.retention_seconds
        with self.lock:
            stale = [key for key, m in self._metrics.items() if from_iso(m.last_request) < cutoff]
            for key in stale:
                del self._metrics[key]
                self._timestamps.pop(key, None)
            return len(stale)

    def reset_violations(self) -> None:
        with self.lock:
            self._violations.clear()

    def reset(self) -> None:
        """Xoá toàn bộ dữ liệu (dùng cho test hoặc khi admin muốn làm sạch)"""
        with self.lock:
            self._metrics.clear()
            self._timestamps.clear()
            self._violations.clear()
            self.total_violations = 0

    def __len__(self) -> int:
        return len(self._metrics)

    def __contains__(self, key: str) -> bool:
        return key in self._metrics
