from typing import Deque, Dict, Optional
import time
from log.system_log import system_logger
from security.config import SecurityConfig
from security.metrics_store import MetricsStore
from security.models import RATE_LIMIT, RateLimitResult, Violation
from utils.utils import to_iso

"""
Rate Limiter cho crawler IA (in-memory, sliding window nhiều cửa sổ)
- Mỗi cặp (IP, loại crawler) có 1 nhật ký timestamp (ms) các request ĐÃ ĐƯỢC CHO QUA.
- Mỗi lần có request mới:
    1. Bỏ các timestamp cũ hơn 24 giờ (chỉ dọn key đang kiểm tra, không quét toàn bộ).
    2. Đếm số request trong 4 cửa sổ: 10 giây (burst), 1 phút, 1 giờ, 24 giờ.
    3. Lấy hạn mức theo loại crawler (không có thì dùng "default").
    4. So sánh theo thứ tự cố định burst -> phút -> giờ -> ngày, dừng ở cửa sổ ĐẦU TIÊN có count >= limit.
       Burst đứng đầu vì đó là tín hiệu cần xử lý ngay nhất.
    5. Vi phạm: KHÔNG ghi timestamp (request bị từ chối không tính vào các cửa sổ sau), ghi violation.
       Hợp lệ: ghi timestamp hiện tại.
- Số liệu requestsPerMinute/Hour/Day = count + 1 ("đây sẽ là request thứ N"), cập nhật cho mọi lần thử.
"""

# (limitType, độ dài cửa sổ ms, thuộc tính hạn mức trong RateLimit, nhãn thời gian)
WINDOWS = (
    ("burst",      10 * 1000,           "burst_limit",         "10 seconds"),
    ("per_minute", 60 * 1000,           "requests_per_minute", "1 minute"),
    ("per_hour",   60 * 60 * 1000,      "requests_per_hour",   "1 hour"),
    ("per_day",    24 * 60 * 60 * 1000, "requests_per_day",    "24 hours"),
)

DAY_MS = 24 * 60 * 60 * 1000

# Throttle log: tối đa 1 log/giây
_LOG_EVERY_SECONDS = 1.0


def _prune(timestamps: Deque[int], cutoff_ms: int) -> None:
    """Bỏ các timestamp <= cutoff_ms (sửa trực tiếp trên deque)"""
    while timestamps and timestamps[0] <= cutoff_ms:
        timestamps.popleft()

def _window_counts(timestamps: Deque[int], now_ms: int) -> Dict[str, int]:
    """
    Đếm số timestamp mới hơn (now - window) cho từng cửa sổ.
    timestamps phải đã qua _prune và tăng dần: cửa sổ 24 giờ chính là len(timestamps),
    các cửa sổ hẹp hơn đếm từ cuối deque và dừng khi ra khỏi cửa sổ 1 giờ.
    """
    counts = {limit_type: 0 for limit_type, _, _, _ in WINDOWS}
    counts["per_day"] = len(timestamps)

    narrow = WINDOWS[:-1]
    widest_ms = narrow[-1][1]
    for ts in reversed(timestamps):
        if ts <= now_ms - widest_ms:
            break
        for limit_type, window_ms, _, _ in narrow:
            if ts > now_ms - window_ms:
                counts[limit_type] += 1
    return counts


class RateLimiter:

    def __init__(self, store: MetricsStore):
        self.store = store
        self._last_log_ts = 0.0

    def _log_violation_once(self, violation: Violation) -> None:
        """Log vi phạm có throttle để tránh spam khi 1 crawler dồn request liên tục"""
        now = time.time()
        if now - self._last_log_ts >= _LOG_EVERY_SECONDS:
            self._last_log_ts = now
            details = violation.details
            system_logger.warning(
                "Rate limit %s: %s từ %s (%s/%s trong %s)",
                details["limitType"], violation.crawler_type, violation.ip,
                details["requests"], details["limit"], details["timeWindow"],
            )

    def check(self, ip: str, crawler_type: str, config: SecurityConfig, now: float,
              user_agent: Optional[str] = None, path: str = "") -> RateLimitResult:
        """
        Kiểm tra 1 request của crawler
        - ip, crawler_type: khoá của crawler
        - config: cấu hình đang hiệu lực (đọc rate_limits)
        - now: epoch (giây)
        - user_agent, path: ghi vào violation nếu có (mặc định "<loại> crawler" và "")
        Trả RateLimitResult(allowed, metrics, violation)
        """
        now_ms = int(now * 1000)
        current_time = to_iso(now)

        # Đọc-sửa-ghi nhật ký của 1 key phải nằm trọn trong lock
        with self.store.lock:
            metrics = self.store.get_or_create(ip, crawler_type, now)
            timestamps = self.store.timestamps(ip, crawler_type)

            _prune(timestamps, now_ms - DAY_MS)
            counts = _window_counts(timestamps, now_ms)
            limits = config.limits_for(crawler_type)

            # Cập nhật số liệu cho lần thử này
            metrics.request_count += 1
            metrics.last_request = current_time
            metrics.requests_per_minute = counts["per_minute"] + 1
            metrics.requests_per_hour = counts["per_hour"] + 1
            metrics.requests_per_day = counts["per_day"] + 1

            for limit_type, _, limit_attr, time_window in WINDOWS:
                limit = getattr(limits, limit_attr)
                requests = counts[limit_type]
                if requests < limit:
                    continue

                violation = Violation(
                    type=RATE_LIMIT,
                    crawler_type=crawler_type,
                    ip=ip,
                    user_agent=user_agent if user_agent is not None else f"{crawler_type} crawler",
                    path=path,
                    timestamp=current_time,
                    details={
                        "limitType": limit_type,
                        "requests": requests,
                        "limit": limit,
                        "timeWindow": time_window,
                    },
                )
                self.store.record_violation(metrics, violation)
                self._log_violation_once(violation)
                return RateLimitResult(allowed=False, metrics=metrics.snapshot(), violation=violation)

            # Không vi phạm -> tính request này vào các cửa sổ
            timestamps.append(now_ms)
            return RateLimitResult(allowed=True, metrics=metrics.snapshot())
