from dataclasses import dataclass, field  # # Dùng dataclass cho nhóm cấu hình gọn gàng
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Tuple

from utils.utils import _norm_ip

"""
Cấu hình bảo mật cho crawler IA.
- Mỗi service giữ 1 SecurityConfig "đang hiệu lực", thay thế nguyên object khi cập nhật (không sửa tại chỗ).
- Khi cập nhật chỉ thay các khoá cấp 1 được truyền vào (shallow merge): truyền `rateLimits` là thay TOÀN BỘ map.
- Khi trao đổi qua HTTP dùng tên trường camelCase (rateLimits, ipBlacklist, ...).
"""


def _to_int(value: Any, name: str) -> int:
    """Ép kiểu số nguyên không âm, sai kiểu -> ValueError"""
    if isinstance(value, bool):
        raise ValueError(f"{name} phải là số nguyên, giá trị nhận được: {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} phải là số nguyên, giá trị nhận được: {value!r}")
    if number < 0:
        raise ValueError(f"{name} không được âm, giá trị nhận được: {number}")
    return number

def _to_strings(value: Any, name: str) -> Tuple[str, ...]:
    """Danh sách chuỗi (giữ nguyên thứ tự, bỏ trùng)"""
    if isinstance(value, str) or not isinstance(value, Iterable):
        raise ValueError(f"{name} phải là danh sách chuỗi")
    out = []
    for item in value:
        if not isinstance(item, str):
            raise ValueError(f"{name} chỉ chứa chuỗi, giá trị nhận được: {item!r}")
        if item not in out:
            out.append(item)
    return tuple(out)

def _require(data: Mapping[str, Any], keys: Iterable[str], section: str) -> None:
    if not isinstance(data, Mapping):
        raise ValueError(f"{section} phải là object")
    missing = [k for k in keys if k not in data]
    if missing:
        raise ValueError(f"{section} thiếu trường: {', '.join(missing)}")


@dataclass(frozen=True)
class RateLimit:
    """
    Hạn mức của 1 loại crawler:
    - requests_per_minute / requests_per_hour / requests_per_day: số request tối đa trong cửa sổ tương ứng
    - burst_limit: số request tối đa trong 10 giây (cửa sổ burst)
    Giá trị 0 là hợp lệ: chặn cứng mọi request của loại crawler này.
    """
    requests_per_minute: int
    requests_per_hour: int
    requests_per_day: int
    burst_limit: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "requestsPerMinute": self.requests_per_minute,
            "requestsPerHour": self.requests_per_hour,
            "requestsPerDay": self.requests_per_day,
            "burstLimit": self.burst_limit,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RateLimit":
        _require(data, ("requestsPerMinute", "requestsPerHour", "requestsPerDay", "burstLimit"), "rateLimit")
        return cls(
            requests_per_minute=_to_int(data["requestsPerMinute"], "requestsPerMinute"),
            requests_per_hour=_to_int(data["requestsPerHour"], "requestsPerHour"),
            requests_per_day=_to_int(data["requestsPerDay"], "requestsPerDay"),
            burst_limit=_to_int(data["burstLimit"], "burstLimit"),
        )


@dataclass(frozen=True)
class AnomalyDetection:
    """
    Phát hiện bất thường:
    - suspicious_patterns: các chuỗi con nghi vấn trong path (so khớp không phân biệt hoa thường, theo thứ tự)
    - max_requests_per_second, max_concurrent_requests: chỉ mang tính thông tin, chưa được áp dụng
    """
    enabled: bool
    suspicious_patterns: Tuple[str, ...]
    max_requests_per_second: int
    max_concurrent_requests: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "suspiciousPatterns": list(self.suspicious_patterns),
            "maxRequestsPerSecond": self.max_requests_per_second,
            "maxConcurrentRequests": self.max_concurrent_requests,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AnomalyDetection":
        _require(data, ("enabled", "suspiciousPatterns", "maxRequestsPerSecond", "maxConcurrentRequests"), "anomalyDetection")
        return cls(
            enabled=bool(data["enabled"]),
            suspicious_patterns=_to_strings(data["suspiciousPatterns"], "suspiciousPatterns"),
            max_requests_per_second=_to_int(data["maxRequestsPerSecond"], "maxRequestsPerSecond"),
            max_concurrent_requests=_to_int(data["maxConcurrentRequests"], "maxConcurrentRequests"),
        )


@dataclass(frozen=True)
class EmergencyMode:
    """
    Chế độ khẩn cấp: khi bật, chỉ các crawler trong allowed_crawlers được đi qua.
    max_requests_per_minute chỉ mang tính thông tin.
    """
    enabled: bool
    allowed_crawlers: FrozenSet[str]
    max_requests_per_minute: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "allowedCrawlers": sorted(self.allowed_crawlers),
            "maxRequestsPerMinute": self.max_requests_per_minute,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EmergencyMode":
        _require(data, ("enabled", "allowedCrawlers", "maxRequestsPerMinute"), "emergencyMode")
        return cls(
            enabled=bool(data["enabled"]),
            allowed_crawlers=frozenset(_to_strings(data["allowedCrawlers"], "allowedCrawlers")),
            max_requests_per_minute=_to_int(data["maxRequestsPerMinute"], "maxRequestsPerMinute"),
        )


def _parse_rate_limits(data: Any) -> Dict[str, RateLimit]:
    if not isinstance(data, Mapping):
        raise ValueError("rateLimits phải là object")
    if "default" not in data:
        raise ValueError("rateLimits phải có mục 'default'")
    return {str(name): RateLimit.from_dict(limits) for name, limits in data.items()}

def _parse_ip_set(name: str):
    """
    Danh sách IP được chuẩn hoá giống IP client ở middleware ("2001:DB8::1" -> "2001:db8::1").
    Chuỗi không parse được thì giữ nguyên.
    """
    def parse(data):
        ips = []
        for item in _to_strings(data, name):
            is_ip, normalized = _norm_ip(item)
            ips.append(normalized if is_ip else item)
        return frozenset(ips)
    return parse


# Tên khoá camelCase -> (tên thuộc tính, hàm parse)
_SECTIONS = {
    "rateLimits": ("rate_limits", _parse_rate_limits),
    "anomalyDetection": ("anomaly_detection", AnomalyDetection.from_dict),
    "ipWhitelist": ("ip_whitelist", _parse_ip_set("ipWhitelist")),
    "ipBlacklist": ("ip_blacklist", _parse_ip_set("ipBlacklist")),
    "protectedPaths": ("protected_paths", lambda data: _to_strings(data, "protectedPaths")),
    "emergencyMode": ("emergency_mode", EmergencyMode.from_dict),
}


@dataclass(frozen=True)
class SecurityConfig:
    """
    Cấu hình bảo mật toàn cục của 1 service.
    - rate_limits: hạn mức theo loại crawler, bắt buộc có "default"
    - ip_whitelist: IP bỏ qua kiểm tra rate limit
    - ip_blacklist: IP luôn bị chặn
    - protected_paths: các tiền tố path cần bảo vệ (chỉ mang tính thông tin)
    """
    rate_limits: Dict[str, RateLimit]
    anomaly_detection: AnomalyDetection
    emergency_mode: EmergencyMode
    ip_whitelist: FrozenSet[str] = field(default_factory=frozenset)
    ip_blacklist: FrozenSet[str] = field(default_factory=frozenset)
    protected_paths: Tuple[str, ...] = ()

    def limits_for(self, crawler_type: str) -> RateLimit:
        """Hạn mức của loại crawler; không có cấu hình riêng thì dùng "default" """
        return self.rate_limits.get(crawler_type) or self.rate_limits["default"]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rateLimits": {name: limits.to_dict() for name, limits in self.rate_limits.items()},
            "anomalyDetection": self.anomaly_detection.to_dict(),
            "ipWhitelist": sorted(self.ip_whitelist),
            "ipBlacklist": sorted(self.ip_blacklist),
            "protectedPaths": list(self.protected_paths),
            "emergencyMode": self.emergency_mode.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SecurityConfig":
        """Tạo cấu hình đầy đủ từ dict; các khoá thiếu lấy theo mặc định"""
        return DEFAULT_SECURITY_CONFIG.merged(data)

    def merged(self, partial: Mapping[str, Any]) -> "SecurityConfig":
        """
        Shallow merge: chỉ thay các khoá cấp 1 có trong partial, giữ nguyên phần còn lại.
        Khoá không hợp lệ hoặc giá trị sai kiểu -> ValueError (caller tự quyết định trả 400).
        """
        if not isinstance(partial, Mapping):
            raise ValueError("Cấu hình cập nhật phải là object")

        unknown = [k for k in partial if k not in _SECTIONS]
        if unknown:
            raise ValueError(f"Khoá cấu hình không hợp lệ: {', '.join(map(str, unknown))}")

        values = {
            "rate_limits": dict(self.rate_limits),
            "anomaly_detection": self.anomaly_detection,
            "emergency_mode": self.emergency_mode,
            "ip_whitelist": self.ip_whitelist,
            "ip_blacklist": self.ip_blacklist,
            "protected_paths": self.protected_paths,
        }
        for key, raw in partial.items():
            attr, parse = _SECTIONS[key]
            values[attr] = parse(raw)
        return SecurityConfig(**values)


# Cấu hình mặc định (có thể thay đổi lúc chạy qua API quản trị)
DEFAULT_SECURITY_CONFIG = SecurityConfig(
    rate_limits={
        "GPTBot":          RateLimit(requests_per_minute=30, requests_per_hour=1000, requests_per_day=10000, burst_limit=10),
        "Google-Extended": RateLimit(requests_per_minute=60, requests_per_hour=2000, requests_per_day=20000, burst_limit=15),
        "ClaudeBot":       RateLimit(requests_per_minute=30, requests_per_hour=1000, requests_per_day=10000, burst_limit=10),
        "ChatGPT-User":    RateLimit(requests_per_minute=20, requests_per_hour=500,  requests_per_day=5000,  burst_limit=5),
        "Bingbot":         RateLimit(requests_per_minute=40, requests_per_hour=1500, requests_per_day=15000, burst_limit=12),
        "default":         RateLimit(requests_per_minute=10, requests_per_hour=200,  requests_per_day=2000,  burst_limit=3),
    },
    # Patterns nghi vấn: các đường dẫn mà crawler hợp lệ không có lý do để truy cập
    anomaly_detection=AnomalyDetection(
        enabled=True,
        suspicious_patterns=(
            "/admin", "/api/admin", "/.env", "/wp-admin", "/phpmyadmin",
            "/config", "/backup", "/database", "/.git", "/node_modules",
        ),
        max_requests_per_second=10,
        max_concurrent_requests=5,
    ),
    ip_blacklist=frozenset(),
    ip_whitelist=frozenset(),
    protected_paths=("/api/admin", "/admin", "/private", "/_next/static", "/api/auth"),
    emergency_mode=EmergencyMode(
        enabled=False,
        allowed_crawlers=frozenset({"GPTBot", "Google-Extended"}),
        max_requests_per_minute=5,
    ),
)
