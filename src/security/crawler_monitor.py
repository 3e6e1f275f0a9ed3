import os
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Tuple
import httpx
from dotenv import load_dotenv

from log.logging_config import get_crawler_stats
from log.system_log import system_logger
from security.config import _require, _to_int, _to_strings
from utils.utils import from_iso, to_iso

load_dotenv()  # Tự động tìm và nạp file .env ở thư mục hiện tại

"""
Giám sát khả năng truy cập của crawler IA vào website:
- Gửi request GET tới các URL kiểm tra với đúng User-Agent của từng crawler (health check).
- Phân tích kết quả theo ngưỡng cảnh báo: tỉ lệ thành công, thời gian phản hồi, số lỗi trong 1 giờ.
- Giữ cache 100 health check gần nhất cho mỗi crawler và 1000 cảnh báo gần nhất (chỉ trong bộ nhớ).
- Có webhook thì gửi cảnh báo ra ngoài sau mỗi chu kỳ giám sát.
"""

# Website được kiểm tra và webhook nhận cảnh báo
MONITOR_SITE_URL = os.getenv("MONITOR_SITE_URL", "http://localhost:3000").rstrip("/")
MONITOR_WEBHOOK_URL = os.getenv("MONITOR_WEBHOOK_URL") or None

HEALTH_CHECK_TIMEOUT = httpx.Timeout(10.0)
WEBHOOK_TIMEOUT = httpx.Timeout(10.0)

HEALTH_CHECKS_PER_CRAWLER = 100
HEALTH_CHECKS_IN_STATS = 10
ALERTS_LIMIT = 1000
RECENT_ALERTS_LIMIT = 50
ERROR_WINDOW_SECONDS = 60 * 60

DEFAULT_CRAWLER = "GPTBot"
DEFAULT_HEALTH_CHECK_URL = f"{MONITOR_SITE_URL}/"

CRAWLER_USER_AGENTS = {
    "GPTBot": "Mozilla/5.0 AppleWebKit/537.36 (KHTML, like Gecko); compatible; GPTBot/1.0; +https://openai.com/gptbot",
    "Google-Extended": "Mozilla/5.0 (compatible; Google-Extended/1.0; +https://developers.google.com/search/docs/crawling-indexing/overview-google-crawlers)",
    "ClaudeBot": "Mozilla/5.0 AppleWebKit/537.36 (KHTML, like Gecko); compatible; ClaudeBot/1.0; +claudebot@anthropic.com",
    "ChatGPT-User": "Mozilla/5.0 AppleWebKit/537.36 (KHTML, like Gecko); compatible; ChatGPT-User/1.0; +https://openai.com/bot",
    "Bingbot": "Mozilla/5.0 (compatible; bingbot/2.0; +http://www.bing.com/bingbot.htm)",
}

# Header giống trình duyệt, httpx tự lo Accept-Encoding và Connection
REQUEST_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "DNT": "1",
    "Upgrade-Insecure-Requests": "1",
}


def user_agent_for(crawler_type: str) -> str:
    """Loại crawler không có trong danh sách dùng User-Agent của GPTBot"""
    return CRAWLER_USER_AGENTS.get(crawler_type, CRAWLER_USER_AGENTS[DEFAULT_CRAWLER])

def _to_rate(value: Any, name: str) -> float:
    if isinstance(value, bool):
        raise ValueError(f"{name} phải là số, giá trị nhận được: {value!r}")
    try:
        rate = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} phải là số, giá trị nhận được: {value!r}")
    if not 0 <= rate <= 100:
        raise ValueError(f"{name} phải nằm trong khoảng 0-100, giá trị nhận được: {rate}")
    return rate


@dataclass(frozen=True)
class AlertThresholds:
    """
    Ngưỡng sinh cảnh báo:
    - max_response_time: thời gian phản hồi trung bình tối đa (ms) của các check thành công
    - min_success_rate: tỉ lệ thành công tối thiểu (%)
    - max_errors_per_hour: số check lỗi tối đa trong 1 giờ gần nhất
    """
    max_response_time: int
    min_success_rate: float
    max_errors_per_hour: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "maxResponseTime": self.max_response_time,
            "minSuccessRate": self.min_success_rate,
            "maxErrorsPerHour": self.max_errors_per_hour,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AlertThresholds":
        _require(data, ("maxResponseTime", "minSuccessRate", "maxErrorsPerHour"), "alertThresholds")
        return cls(
            max_response_time=_to_int(data["maxResponseTime"], "maxResponseTime"),
            min_success_rate=_to_rate(data["minSuccessRate"], "minSuccessRate"),
            max_errors_per_hour=_to_int(data["maxErrorsPerHour"], "maxErrorsPerHour"),
        )


def _parse_test_urls(data: Any) -> Tuple[Tuple[str, Tuple[str, ...]], ...]:
    if isinstance(data, (str, Mapping)) or not isinstance(data, (list, tuple)):
        raise ValueError("testUrls phải là danh sách")
    out = []
    for item in data:
        _require(item, ("crawlerType", "urls"), "testUrls")
        out.append((str(item["crawlerType"]), _to_strings(item["urls"], "urls")))
    return tuple(out)


@dataclass(frozen=True)
class MonitoringConfig:
    """
    Cấu hình giám sát (trao đổi qua HTTP bằng camelCase):
    - check_interval: chu kỳ giám sát đề xuất (phút), bên gọi tự lập lịch POST ?action=run-cycle
    - test_urls: danh sách (loại crawler, các URL cần kiểm tra)
    - webhook_url: None thì không gửi cảnh báo ra ngoài
    """
    check_interval: int
    alert_thresholds: AlertThresholds
    test_urls: Tuple[Tuple[str, Tuple[str, ...]], ...]
    webhook_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "checkInterval": self.check_interval,
            "alertThresholds": self.alert_thresholds.to_dict(),
            "testUrls": [{"crawlerType": crawler_type, "urls": list(urls)} for crawler_type, urls in self.test_urls],
            "webhookUrl": self.webhook_url,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MonitoringConfig":
        _require(data, ("checkInterval", "alertThresholds", "testUrls"), "monitoringConfig")
        webhook_url = data.get("webhookUrl")
        if webhook_url is not None and not isinstance(webhook_url, str):
            raise ValueError("webhookUrl phải là chuỗi")
        return cls(
            check_interval=_to_int(data["checkInterval"], "checkInterval"),
            alert_thresholds=AlertThresholds.from_dict(data["alertThresholds"]),
            test_urls=_parse_test_urls(data["testUrls"]),
            webhook_url=webhook_url or None,
        )

    def merged(self, partial: Mapping[str, Any]) -> "MonitoringConfig":
        """Shallow merge các khoá cấp 1 (camelCase) vào cấu hình này, sai dữ liệu -> ValueError"""
        if not isinstance(partial, Mapping):
            raise ValueError("config phải là object")
        unknown = set(partial) - {"checkInterval", "alertThresholds", "testUrls", "webhookUrl"}
        if unknown:
            raise ValueError(f"Khoá cấu hình không hợp lệ: {', '.join(sorted(unknown))}")
        return MonitoringConfig.from_dict({**self.to_dict(), **partial})


DEFAULT_TEST_PATHS = ("/", "/blog", "/sitemap.xml")

DEFAULT_MONITORING_CONFIG = MonitoringConfig(
    check_interval=30,
    alert_thresholds=AlertThresholds(max_response_time=5000, min_success_rate=95, max_errors_per_hour=10),
    test_urls=tuple(
        (crawler_type, tuple(f"{MONITOR_SITE_URL}{p}" for p in DEFAULT_TEST_PATHS))
        for crawler_type in ("GPTBot", "Google-Extended", "ClaudeBot")
    ),
    webhook_url=MONITOR_WEBHOOK_URL,
)


@dataclass(frozen=True)
class HealthCheck:
    """Kết quả 1 lần kiểm tra, status_code = None khi không nhận được phản hồi"""
    crawler_type: str
    url: str
    timestamp: str
    success: bool
    response_time: int
    status_code: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "crawlerType": self.crawler_type,
            "url": self.url,
            "timestamp": self.timestamp,
            "success": self.success,
            "responseTime": self.response_time,
        }
        if self.status_code is not None:
            out["statusCode"] = self.status_code
        if self.error is not None:
            out["error"] = self.error
        return out


@dataclass(frozen=True)
class CrawlerAlert:
    type: str  # error | warning | info
    crawler_type: str
    message: str
    timestamp: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "crawlerType": self.crawler_type,
            "message": self.message,
            "timestamp": self.timestamp,
            "details": dict(self.details),
        }


class CrawlerMonitor:
    """
    Service giám sát crawler, giữ 1 instance trên `app.state`.
    - transport: truyền httpx.MockTransport khi test để không gọi mạng thật
    - clock: đồng hồ cho timestamp của check/cảnh báo
    """

    def __init__(self, config: Optional[MonitoringConfig] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 clock: Callable[[], float] = time.time):
        self.config = config or DEFAULT_MONITORING_CONFIG
        self.transport = transport
        self.clock = clock
        self._lock = threading.Lock()
        self._health_checks: Dict[str, Deque[HealthCheck]] = {}
        self._alerts: Deque[CrawlerAlert] = deque(maxlen=ALERTS_LIMIT)

    def _client(self, timeout: httpx.Timeout) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self.transport,
                                 follow_redirects=True, trust_env=False)

    # ===== Health check =====

    async def perform_health_check(self, crawler_type: str, url: str) -> HealthCheck:
        """
        GET `url` với User-Agent của `crawler_type`.
        Thành công khi status 2xx; lỗi mạng/timeout/URL sai được ghi vào `error`, không ném ra ngoài.
        """
        timestamp = to_iso(self.clock())
        headers = {"User-Agent": user_agent_for(crawler_type), **REQUEST_HEADERS}
        started = time.monotonic()

        try:
            async with self._client(HEALTH_CHECK_TIMEOUT) as client:
                response = await client.get(url, headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL) as ex:
            elapsed = int((time.monotonic() - started) * 1000)
            system_logger.warning(f"Health check lỗi [{crawler_type}] {url}: {ex}")
            return HealthCheck(crawler_type=crawler_type, url=url, timestamp=timestamp, success=False,
                               response_time=elapsed, error=str(ex) or ex.__class__.__name__)

        elapsed = int((time.monotonic() - started) * 1000)
        return HealthCheck(crawler_type=crawler_type, url=url, timestamp=timestamp,
                           success=response.is_success, response_time=elapsed,
                           status_code=response.status_code)

    async def run_all_health_checks(self, config: Optional[MonitoringConfig] = None) -> List[HealthCheck]:
        """Kiểm tra lần lượt mọi URL trong test_urls, lưu kết quả vào cache của từng crawler"""
        config = config or self.config
        results = []
        for crawler_type, urls in config.test_urls:
            for url in urls:
                result = await self.perform_health_check(crawler_type, url)
                results.append(result)
                with self._lock:
                    checks = self._health_checks.setdefault(crawler_type, deque(maxlen=HEALTH_CHECKS_PER_CRAWLER))
                    checks.append(result)
        return results

    # ===== Cảnh báo =====

    def analyze_health_checks(self, results: List[HealthCheck],
                              config: Optional[MonitoringConfig] = None) -> List[CrawlerAlert]:
        """
        Sinh cảnh báo theo từng loại crawler:
        - error: tỉ lệ thành công < min_success_rate
        - warning: thời gian phản hồi trung bình (chỉ tính check thành công) > max_response_time
        - error: số check lỗi trong 1 giờ gần nhất > max_errors_per_hour
        Cảnh báo được lưu vào cache (tối đa 1000 cái gần nhất).
        """
        thresholds = (config or self.config).alert_thresholds
        now = self.clock()
        timestamp = to_iso(now)

        groups: Dict[str, List[HealthCheck]] = {}
        for check in results:
            groups.setdefault(check.crawler_type, []).append(check)

        alerts = []
        for crawler_type, checks in groups.items():
            successful = [c for c in checks if c.success]
            failed = [c for c in checks if not c.success]
            success_rate = len(successful) / len(checks) * 100

            if success_rate < thresholds.min_success_rate:
                alerts.append(CrawlerAlert(
                    type="error", crawler_type=crawler_type, timestamp=timestamp,
                    message=f"Low success rate: {success_rate:.1f}% (threshold: {thresholds.min_success_rate:g}%)",
                    details={
                        "successfulChecks": len(successful),
                        "totalChecks": len(checks),
                        "failedUrls": [c.url for c in failed],
                    },
                ))

            if successful:
                avg_response_time = sum(c.response_time for c in successful) / len(successful)
                if avg_response_time > thresholds.max_response_time:
                    slowest = max(successful, key=lambda c: c.response_time)
                    alerts.append(CrawlerAlert(
                        type="warning", crawler_type=crawler_type, timestamp=timestamp,
                        message=f"High response time: {avg_response_time:.0f}ms (threshold: {thresholds.max_response_time}ms)",
                        details={"averageResponseTime": avg_response_time, "slowestUrl": slowest.to_dict()},
                    ))

            recent_errors = [c for c in failed if from_iso(c.timestamp) > now - ERROR_WINDOW_SECONDS]
            if len(recent_errors) > thresholds.max_errors_per_hour:
                alerts.append(CrawlerAlert(
                    type="error", crawler_type=crawler_type, timestamp=timestamp,
                    message=f"Too many errors in the last hour: {len(recent_errors)} (threshold: {thresholds.max_errors_per_hour})",
                    details={
                        "recentErrors": [{"url": c.url, "error": c.error, "timestamp": c.timestamp} for c in recent_errors],
                    },
                ))

        with self._lock:
            self._alerts.extend(alerts)
        return alerts

    async def send_alert_notifications(self, alerts: List[CrawlerAlert], webhook_url: Optional[str]) -> bool:
        """POST danh sách cảnh báo tới webhook, trả về True nếu gửi thành công"""
        if not webhook_url or not alerts:
            return False

        payload = {
            "timestamp": to_iso(self.clock()),
            "service": "AI Crawler Monitor",
            "alerts": [
                {"type": a.type, "crawler": a.crawler_type, "message": a.message, "timestamp": a.timestamp}
                for a in alerts
            ],
        }
        try:
            async with self._client(WEBHOOK_TIMEOUT) as client:
                response = await client.post(webhook_url, json=payload)
                response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as ex:
            system_logger.error(f"Không gửi được cảnh báo tới webhook {webhook_url}: {ex}")
            return False

        system_logger.info(f"Đã gửi {len(alerts)} cảnh báo tới webhook")
        return True

    async def run_monitoring_cycle(self, config: Optional[MonitoringConfig] = None) -> Dict[str, Any]:
        """1 chu kỳ giám sát: health check mọi URL -> phân tích -> gửi webhook nếu có cảnh báo"""
        config = config or self.config
        system_logger.info("Bắt đầu chu kỳ giám sát crawler IA")

        health_checks = await self.run_all_health_checks(config)
        alerts = self.analyze_health_checks(health_checks, config)

        for alert in alerts:
            system_logger.warning(f"[{alert.type.upper()}] {alert.crawler_type}: {alert.message}")
        if alerts:
            await self.send_alert_notifications(alerts, config.webhook_url)

        system_logger.info(
            f"Hoàn tất chu kỳ giám sát: kiểm tra {len(health_checks)} URL, sinh {len(alerts)} cảnh báo"
        )
        return {
            "healthChecks": [c.to_dict() for c in health_checks],
            "alerts": [a.to_dict() for a in alerts],
        }

    # ===== Thống kê =====

    def get_health_stats(self) -> Dict[str, Any]:
        """
        - healthChecks: 10 check gần nhất của mỗi crawler
        - recentAlerts: 50 cảnh báo gần nhất
        - crawlerStats: thống kê log truy cập của crawler (7 ngày gần nhất)
        """
        with self._lock:
            health_checks = {
                crawler_type: [c.to_dict() for c in list(checks)[-HEALTH_CHECKS_IN_STATS:]]
                for crawler_type, checks in self._health_checks.items()
            }
            recent_alerts = [a.to_dict() for a in list(self._alerts)[-RECENT_ALERTS_LIMIT:]]

        return {
            "healthChecks": health_checks,
            "recentAlerts": recent_alerts,
            "crawlerStats": get_crawler_stats(),
        }
