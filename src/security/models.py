from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

"""
Các kiểu dữ liệu dùng chung cho module bảo mật crawler:
- Violation: 1 lần vi phạm (bất biến)
- CrawlerMetrics: số liệu theo cặp (IP, loại crawler)
- RateLimitResult / AnalysisResult: kết quả trả về cho tầng HTTP
"""

# Các loại vi phạm
RATE_LIMIT = "rate_limit"
ANOMALY = "anomaly"
BLACKLIST = "blacklist"
SUSPICIOUS_PATTERN = "suspicious_pattern"
EMERGENCY_MODE = "emergency_mode"


@dataclass(frozen=True)
class Violation:
    """
    Bản ghi vi phạm, không sửa đổi sau khi tạo.
    - details: dữ liệu tuỳ theo loại, vd rate_limit: {limitType, requests, limit, timeWindow}
    """
    type: str
    crawler_type: str
    ip: str
    user_agent: str
    path: str
    timestamp: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "crawlerType": self.crawler_type,
            "ip": self.ip,
            "userAgent": self.user_agent,
            "path": self.path,
            "timestamp": self.timestamp,
            "details": dict(self.details),
        }


@dataclass
class CrawlerMetrics:
    """
    Số liệu của 1 cặp (IP, loại crawler), tạo khi có request đầu tiên.
    requests_per_minute/hour/day là ảnh chụp ở lần kiểm tra gần nhất, không tự cập nhật giữa 2 lần kiểm tra.
    """
    ip: str
    crawler_type: str
    last_request: str
    request_count: int = 0
    requests_per_minute: int = 0
    requests_per_hour: int = 0
    requests_per_day: int = 0
    violations: List[Violation] = field(default_factory=list)

    def snapshot(self) -> "CrawlerMetrics":
        """Bản sao để trả ra ngoài, không chia sẻ list violations với store"""
        return replace(self, violations=list(self.violations))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ip": self.ip,
            "crawlerType": self.crawler_type,
            "requestCount": self.request_count,
            "lastRequest": self.last_request,
            "requestsPerMinute": self.requests_per_minute,
            "requestsPerHour": self.requests_per_hour,
            "requestsPerDay": self.requests_per_day,
            "violations": [v.to_dict() for v in self.violations],
        }


@dataclass
class RateLimitResult:
    allowed: bool
    metrics: CrawlerMetrics
    violation: Optional[Violation] = None


@dataclass
class AnalysisResult:
    """Kết quả phân tích 1 request: allowed = True khi không có vi phạm nào"""
    allowed: bool
    violations: List[Violation] = field(default_factory=list)
    metrics: Optional[CrawlerMetrics] = None

    @property
    def violation_types(self) -> List[str]:
        return [v.type for v in self.violations]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "violations": [v.to_dict() for v in self.violations],
            "metrics": self.metrics.to_dict() if self.metrics else None,
        }
