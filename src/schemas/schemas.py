from typing import Dict, List, Optional
from pydantic import BaseModel, Field

"""
Định nghĩa lược đồ dữ liệu gửi lên các API quản trị bảo mật crawler
Tên trường dùng camelCase, giống hệt tên trường của cấu hình khi trao đổi qua JSON
"""

class AdminLogin(BaseModel):
    """
    Thông tin đăng nhập của admin
    - **email**: phải trùng biến môi trường ADMIN_EMAIL
    - **password**: phải trùng biến môi trường ADMIN_PASSWORD
    """
    email: str
    password: str

class RateLimitSchema(BaseModel):
    """
    Hạn mức đầy đủ của 1 loại crawler (giá trị 0 = chặn cứng)
    """
    requestsPerMinute: int = Field(ge=0)
    requestsPerHour: int = Field(ge=0)
    requestsPerDay: int = Field(ge=0)
    burstLimit: int = Field(ge=0)

class RateLimitPatch(BaseModel):
    """
    Hạn mức cần thay đổi, trường bỏ trống giữ nguyên giá trị hiện tại
    """
    requestsPerMinute: Optional[int] = Field(default=None, ge=0)
    requestsPerHour: Optional[int] = Field(default=None, ge=0)
    requestsPerDay: Optional[int] = Field(default=None, ge=0)
    burstLimit: Optional[int] = Field(default=None, ge=0)

class AnomalyDetectionSchema(BaseModel):
    enabled: bool
    suspiciousPatterns: List[str]
    maxRequestsPerSecond: int = Field(ge=0)
    maxConcurrentRequests: int = Field(ge=0)

class EmergencyModeSchema(BaseModel):
    enabled: bool
    allowedCrawlers: List[str]
    maxRequestsPerMinute: int = Field(ge=0)

class SecurityConfigUpdate(BaseModel):
    """
    Cập nhật 1 phần cấu hình: chỉ các khoá cấp 1 được gửi lên mới bị thay (thay nguyên khoá)
    Khoá lạ sẽ bị từ chối
    """
    rateLimits: Optional[Dict[str, RateLimitSchema]] = None
    anomalyDetection: Optional[AnomalyDetectionSchema] = None
    ipWhitelist: Optional[List[str]] = None
    ipBlacklist: Optional[List[str]] = None
    protectedPaths: Optional[List[str]] = None
    emergencyMode: Optional[EmergencyModeSchema] = None
    class Config():
        extra = "forbid"

class UpdateConfigRequest(BaseModel):
    config: SecurityConfigUpdate

class EmergencyModeRequest(BaseModel):
    """
    Bật/tắt chế độ khẩn cấp, trường bỏ trống lấy theo mặc định
    """
    enabled: bool = False
    allowedCrawlers: Optional[List[str]] = None
    maxRequestsPerMinute: Optional[int] = Field(default=None, ge=0)

class BlacklistRequest(BaseModel):
    """
    - **ip**: địa chỉ IPv4/IPv6
    - **operation**: "add" hoặc "remove"
    """
    ip: str
    operation: str

class RateLimitsRequest(BaseModel):
    crawlerType: str = Field(min_length=1)
    limits: RateLimitPatch


# ===== Giám sát crawler =====

class AlertThresholdsSchema(BaseModel):
    maxResponseTime: int = Field(ge=0)
    minSuccessRate: float = Field(ge=0, le=100)
    maxErrorsPerHour: int = Field(ge=0)

class CrawlerTestUrlsSchema(BaseModel):
    crawlerType: str = Field(min_length=1)
    urls: List[str]

class MonitoringConfigUpdate(BaseModel):
    """
    Ghi đè cấu hình giám sát cho 1 lần chạy, chỉ các khoá cấp 1 được gửi lên mới bị thay
    """
    checkInterval: Optional[int] = Field(default=None, ge=1)
    alertThresholds: Optional[AlertThresholdsSchema] = None
    testUrls: Optional[List[CrawlerTestUrlsSchema]] = None
    webhookUrl: Optional[str] = None
    class Config():
        extra = "forbid"

class MonitorCycleRequest(BaseModel):
    config: Optional[MonitoringConfigUpdate] = None

class CrawlerCheckRequest(BaseModel):
    """
    - **crawlerType**: loại crawler, quyết định User-Agent gửi đi
    - **url**: URL cần kiểm tra
    """
    crawlerType: str = Field(min_length=1)
    url: str = Field(min_length=1)
