from typing import List, Optional

from log.system_log import system_logger
from security.config import SecurityConfig
from security.metrics_store import MetricsStore
from security.models import (
    BLACKLIST, EMERGENCY_MODE, SUSPICIOUS_PATTERN,
    AnalysisResult, CrawlerMetrics, Violation,
)
from security.rate_limiter import RateLimiter
from utils.utils import to_iso

"""
Policy Evaluator: gom tất cả kiểm tra cho 1 request thành 1 kết luận.
Khác với Rate Limiter (dừng ở cửa sổ đầu tiên vi phạm), ở đây MỌI kiểm tra đều chạy
và mọi vi phạm đều được ghi lại, theo thứ tự cố định:
    1. Danh sách đen (blacklist)
    2. Chế độ khẩn cấp (emergency mode)
    3. Pattern nghi vấn trong path
    4. Rate limit (bỏ qua nếu IP nằm trong whitelist)
Không bao giờ ném lỗi vì dữ liệu request: giá trị thiếu được thay bằng mặc định an toàn.
"""


def is_blacklisted(ip: str, config: SecurityConfig) -> bool:
    """IP có nằm trong danh sách đen không"""
    return ip in config.ip_blacklist

def is_whitelisted(ip: str, config: SecurityConfig) -> bool:
    """IP có nằm trong danh sách trắng không"""
    return ip in config.ip_whitelist

def detect_suspicious_pattern(path: str, config: SecurityConfig) -> Optional[str]:
    """
    Tìm pattern nghi vấn đầu tiên xuất hiện trong path (không phân biệt hoa thường).
    Trả về pattern (đúng như trong cấu hình) hoặc None; tắt anomaly detection thì luôn None.
    """
    if not config.anomaly_detection.enabled:
        return None

    path_lc = (path or "").lower()
    for pattern in config.anomaly_detection.suspicious_patterns:
        if pattern.lower() in path_lc:
            return pattern
    return None

def check_emergency_mode(crawler_type: str, config: SecurityConfig) -> bool:
    """True nếu chế độ khẩn cấp đang bật và loại crawler này KHÔNG được phép"""
    emergency = config.emergency_mode
    if not emergency.enabled:
        return False
    return crawler_type not in emergency.allowed_crawlers


def analyze_request(store: MetricsStore, limiter: RateLimiter,
                    ip: Optional[str], user_agent: Optional[str], path: Optional[str],
                    crawler_type: Optional[str], config: SecurityConfig, now: float) -> AnalysisResult:
    """
    Phân tích bảo mật đầy đủ cho 1 request của crawler
    - Các vi phạm blacklist/emergency/pattern được ghi vào nhật ký toàn cục tại đây,
      vi phạm rate limit do Rate Limiter tự ghi (mỗi vi phạm chỉ ghi 1 lần)
    - metrics chỉ có khi kiểm tra rate limit được chạy (IP không nằm trong whitelist)
    """
    ip = ip or "unknown"
    user_agent = user_agent or ""
    path = path or "/"
    crawler_type = crawler_type or "Unknown"
    current_time = to_iso(now)

    violations: List[Violation] = []

    def _violation(violation_type: str, details: dict) -> Violation:
        return Violation(
            type=violation_type,
            crawler_type=crawler_type,
            ip=ip,
            user_agent=user_agent,
            path=path,
            timestamp=current_time,
            details=details,
        )

    # 1. Danh sách đen
    if is_blacklisted(ip, config):
        violations.append(_violation(BLACKLIST, {"reason": "IP in blacklist"}))

    # 2. Chế độ khẩn cấp
    if check_emergency_mode(crawler_type, config):
        violations.append(_violation(EMERGENCY_MODE, {
            "reason": "Emergency mode active, crawler not in allowed list",
        }))

    # 3. Pattern nghi vấn
    pattern = detect_suspicious_pattern(path, config)
    if pattern:
        violations.append(_violation(SUSPICIOUS_PATTERN, {"pattern": pattern}))

    # Ghi các vi phạm chính sách (không gắn với số liệu của crawler)
    for violation in violations:
        store.record_violation(None, violation)

    # 4. Rate limit (chỉ khi không nằm trong whitelist)
    metrics: Optional[CrawlerMetrics] = None
    if not is_whitelisted(ip, config):
        result = limiter.check(ip, crawler_type, config, now, user_agent=user_agent, path=path)
        metrics = result.metrics
        if result.violation is not None:
            violations.append(result.violation)

    if violations:
        system_logger.info(
            "Chặn %s từ %s tại %s: %s",
            crawler_type, ip, path, ", ".join(v.type for v in violations),
        )

    return AnalysisResult(allowed=not violations, violations=violations, metrics=metrics)
