import threading
import time
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from log.system_log import system_logger
from security.config import DEFAULT_SECURITY_CONFIG, RateLimit, SecurityConfig
from security.metrics_store import MetricsStore
from security.models import AnalysisResult
from security.policy import analyze_request
from security.rate_limiter import RateLimiter
from utils.utils import from_iso

"""
Service bảo mật crawler IA: gom Metrics Store, Rate Limiter, Policy Evaluator và cấu hình đang hiệu lực
vào 1 object duy nhất. Tầng HTTP giữ 1 instance trên `app.state` (không dùng biến toàn cục),
test có thể tạo nhiều instance độc lập với đồng hồ giả (clock).
"""

# Crawler được coi là "đang hoạt động" nếu có request trong 1 giờ gần nhất
ACTIVE_WINDOW_SECONDS = 60 * 60

# Vi phạm "gần đây" là trong 24 giờ gần nhất, trả tối đa RECENT_VIOLATIONS_LIMIT bản ghi
RECENT_WINDOW_SECONDS = 24 * 60 * 60
RECENT_VIOLATIONS_LIMIT = 50

BLACKLIST_OPERATIONS = ("add", "remove")


class CrawlerSecurityService:

    def __init__(self, config: Optional[SecurityConfig] = None,
                 clock: Callable[[], float] = time.time):
        self.clock = clock
        self.store = MetricsStore()
        self.limiter = RateLimiter(self.store)
        self._config = config or DEFAULT_SECURITY_CONFIG
        # Mọi thao tác đọc-gộp-ghi cấu hình đi qua khoá này
        self._config_lock = threading.RLock()

    @property
    def config(self) -> SecurityConfig:
        """Cấu hình đang hiệu lực"""
        return self._config

    # ===== Phân tích request =====

    def analyze_request(self, ip: Optional[str], user_agent: Optional[str], path: Optional[str],
                        crawler_type: Optional[str],
                        config: Optional[SecurityConfig] = None) -> AnalysisResult:
        """
        Điểm vào chính cho middleware: trả AnalysisResult(allowed, violations, metrics)
        - config: bỏ trống thì dùng cấu hình đang hiệu lực
        """
        return analyze_request(
            self.store, self.limiter,
            ip=ip, user_agent=user_agent, path=path, crawler_type=crawler_type,
            config=config or self._config, now=self.clock(),
        )

    # ===== Thống kê =====

    def get_security_stats(self) -> Dict[str, Any]:
        """
        Thống kê cho dashboard quản trị:
        - totalCrawlers: số cặp (IP, loại crawler) đang theo dõi
        - activeCrawlers: số crawler có request trong 1 giờ gần nhất
        - totalViolations: tổng số vi phạm đã ghi từ khi khởi động
        - recentViolations: tối đa 50 vi phạm mới nhất trong 24 giờ
        - crawlerMetrics: toàn bộ số liệu hiện tại
        - violationsByType: số vi phạm theo loại trong 24 giờ
        """
        now = self.clock()
        metrics = self.store.all_metrics()

        active = sum(1 for m in metrics if from_iso(m.last_request) > now - ACTIVE_WINDOW_SECONDS)

        recent = [v for v in self.store.violations() if from_iso(v.timestamp) > now - RECENT_WINDOW_SECONDS]

        by_type: Dict[str, int] = {}
        for violation in recent:
            by_type[violation.type] = by_type.get(violation.type, 0) + 1

        return {
            "totalCrawlers": len(metrics),
            "activeCrawlers": active,
            "totalViolations": self.store.total_violations,
            "recentViolations": [v.to_dict() for v in recent[-RECENT_VIOLATIONS_LIMIT:]],
            "crawlerMetrics": [m.to_dict() for m in metrics],
            "violationsByType": by_type,
        }

    # ===== Cấu hình =====

    def update_security_config(self, partial: Mapping[str, Any]) -> SecurityConfig:
        """
        Shallow merge `partial` (khoá camelCase) vào cấu hình ĐANG HIỆU LỰC và áp dụng ngay.
        Các lần cập nhật liên tiếp cộng dồn. Dữ liệu sai -> ValueError, cấu hình giữ nguyên.
        """
        with self._config_lock:
            new_config = self._config.merged(partial)
            self._config = new_config
        system_logger.info("Cập nhật cấu hình bảo mật crawler: %s", ", ".join(partial.keys()))
        return new_config

    def reset_security_config(self) -> SecurityConfig:
        """Khôi phục cấu hình mặc định"""
        with self._config_lock:
            self._config = DEFAULT_SECURITY_CONFIG
        system_logger.info("Khôi phục cấu hình bảo mật crawler mặc định")
        return DEFAULT_SECURITY_CONFIG

    def set_emergency_mode(self, enabled: bool, allowed_crawlers: Optional[Iterable[str]] = None,
                           max_requests_per_minute: Optional[int] = None) -> SecurityConfig:
        """
        Bật/tắt chế độ khẩn cấp. Tham số bỏ trống lấy theo mặc định
        (GPTBot, Google-Extended; 5 request/phút).
        """
        default = DEFAULT_SECURITY_CONFIG.emergency_mode
        return self.update_security_config({
            "emergencyMode": {
                "enabled": bool(enabled),
                "allowedCrawlers": list(allowed_crawlers) if allowed_crawlers is not None else sorted(default.allowed_crawlers),
                "maxRequestsPerMinute": max_requests_per_minute if max_requests_per_minute is not None else default.max_requests_per_minute,
            },
        })

    def update_blacklist(self, ip: str, operation: str) -> SecurityConfig:
        """Thêm (add) hoặc gỡ (remove) 1 IP khỏi danh sách đen"""
        if operation not in BLACKLIST_OPERATIONS:
            raise ValueError('operation must be "add" or "remove"')

        with self._config_lock:
            blacklist = set(self._config.ip_blacklist)
            if operation == "add":
                blacklist.add(ip)
            else:
                blacklist.discard(ip)
            return self.update_security_config({"ipBlacklist": sorted(blacklist)})

    def update_rate_limits(self, crawler_type: str, limits: Mapping[str, Any]) -> RateLimit:
        """
        Cập nhật hạn mức của 1 loại crawler: gộp `limits` (có thể thiếu trường) vào hạn mức hiện có
        của loại đó, nếu chưa có thì vào hạn mức "default". Trả về hạn mức mới.
        """
        with self._config_lock:
            base = self._config.limits_for(crawler_type).to_dict()
            rate_limits = {name: rl.to_dict() for name, rl in self._config.rate_limits.items()}
            rate_limits[crawler_type] = {**base, **limits}
            return self.update_security_config({"rateLimits": rate_limits}).rate_limits[crawler_type]

    # ===== Bảo trì =====

    def cleanup_old_data(self) -> int:
        """Xoá số liệu của crawler không hoạt động quá 7 ngày; trả về số crawler đã xoá"""
        removed = self.store.cleanup(self.clock())
        if removed:
            system_logger.info("Đã xoá số liệu của %s crawler không hoạt động", removed)
        return removed

    def reset_violations(self) -> None:
        self.store.reset_violations()

    def reset(self) -> None:
        """Xoá toàn bộ dữ liệu và khôi phục cấu hình mặc định"""
        self.store.reset()
        with self._config_lock:
            self._config = DEFAULT_SECURITY_CONFIG
