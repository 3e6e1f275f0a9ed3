import asyncio
import json

import httpx
import pytest

from security.crawler_monitor import (
    CRAWLER_USER_AGENTS, DEFAULT_MONITORING_CONFIG, CrawlerMonitor, HealthCheck,
)
from utils.utils import to_iso
from helpers import START_TS

URL = "/api/admin/ai-crawler-monitor"


class FakeSite:
    """
    Website giả cho httpx.MockTransport: ghi lại mọi request, trả status theo path
    """

    def __init__(self, statuses=None, fail_paths=()):
        self.statuses = statuses or {}
        self.fail_paths = set(fail_paths)
        self.requests = []
        self.webhook_payloads = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "hooks.test":
            self.webhook_payloads.append(json.loads(request.content))
            return httpx.Response(204)
        if request.url.path in self.fail_paths:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(self.statuses.get(request.url.path, 200), text="ok")


def _monitor(clock, site):
    return CrawlerMonitor(transport=httpx.MockTransport(site), clock=clock)

def _check(crawler_type="GPTBot", success=True, response_time=100, ts=START_TS, url="http://site.test/"):
    return HealthCheck(crawler_type=crawler_type, url=url, timestamp=to_iso(ts), success=success,
                       response_time=response_time, status_code=200 if success else None,
                       error=None if success else "connection refused")


# ===== Health check =====

def test_health_check_uses_crawler_user_agent(clock):
    site = FakeSite()
    result = asyncio.run(_monitor(clock, site).perform_health_check("ClaudeBot", "http://site.test/blog"))

    assert result.success is True
    assert result.status_code == 200
    assert result.timestamp == to_iso(START_TS)
    assert site.requests[0].headers["user-agent"] == CRAWLER_USER_AGENTS["ClaudeBot"]
    assert "text/html" in site.requests[0].headers["accept"]

def test_unknown_crawler_uses_gptbot_user_agent(clock):
    site = FakeSite()
    asyncio.run(_monitor(clock, site).perform_health_check("SomeBot", "http://site.test/"))
    assert site.requests[0].headers["user-agent"] == CRAWLER_USER_AGENTS["GPTBot"]

def test_health_check_non_2xx_is_failure(clock):
    site = FakeSite(statuses={"/sitemap.xml": 503})
    result = asyncio.run(_monitor(clock, site).perform_health_check("GPTBot", "http://site.test/sitemap.xml"))

    assert result.success is False
    assert result.to_dict()["statusCode"] == 503
    assert "error" not in result.to_dict()

def test_health_check_network_error_is_recorded(clock):
    site = FakeSite(fail_paths=["/down"])
    result = asyncio.run(_monitor(clock, site).perform_health_check("GPTBot", "http://site.test/down"))

    data = result.to_dict()
    assert data["success"] is False
    assert "connection refused" in data["error"]
    assert "statusCode" not in data

def test_health_check_cache_is_capped(clock):
    site = FakeSite()
    monitor = _monitor(clock, site)
    config = DEFAULT_MONITORING_CONFIG.merged({"testUrls": [
        {"crawlerType": "GPTBot", "urls": [f"http://site.test/page-{i}" for i in range(120)]},
    ]})
    asyncio.run(monitor.run_all_health_checks(config))

    assert len(monitor._health_checks["GPTBot"]) == 100
    checks = monitor.get_health_stats()["healthChecks"]["GPTBot"]
    assert len(checks) == 10
    assert checks[-1]["url"] == "http://site.test/page-119"


# ===== Cảnh báo =====

def test_low_success_rate_alert(clock):
    monitor = _monitor(clock, FakeSite())
    results = [_check(), _check(success=False, url="http://site.test/down")]

    alerts = monitor.analyze_health_checks(results)
    assert [a.type for a in alerts] == ["error"]
    assert alerts[0].message == "Low success rate: 50.0% (threshold: 95%)"
    assert alerts[0].details == {"successfulChecks": 1, "totalChecks": 2, "failedUrls": ["http://site.test/down"]}

def test_high_response_time_alert(clock):
    monitor = _monitor(clock, FakeSite())
    results = [_check(response_time=4000), _check(response_time=8000, url="http://site.test/slow")]

    alerts = monitor.analyze_health_checks(results)
    assert [a.type for a in alerts] == ["warning"]
    assert alerts[0].message == "High response time: 6000ms (threshold: 5000ms)"
    assert alerts[0].details["slowestUrl"]["url"] == "http://site.test/slow"

def test_no_response_time_alert_without_successful_checks(clock):
    monitor = _monitor(clock, FakeSite())
    alerts = monitor.analyze_health_checks([_check(success=False)])
    assert [a.message.split(":")[0] for a in alerts] == ["Low success rate"]

def test_too_many_recent_errors_alert(clock):
    config = DEFAULT_MONITORING_CONFIG.merged({
        "alertThresholds": {"maxResponseTime": 5000, "minSuccessRate": 0, "maxErrorsPerHour": 1},
    })
    monitor = _monitor(clock, FakeSite())
    clock.advance(2 * 60 * 60)
    results = [
        _check(success=False, ts=clock() - 60),
        _check(success=False, ts=clock() - 120),
        # Ngoài cửa sổ 1 giờ
        _check(success=False, ts=clock() - 90 * 60),
    ]

    alerts = monitor.analyze_health_checks(results, config)
    assert len(alerts) == 1
    assert alerts[0].message == "Too many errors in the last hour: 2 (threshold: 1)"
    assert len(alerts[0].details["recentErrors"]) == 2

def test_alerts_are_grouped_by_crawler(clock):
    monitor = _monitor(clock, FakeSite())
    results = [_check("GPTBot"), _check("ClaudeBot", success=False)]
    alerts = monitor.analyze_health_checks(results)
    assert [a.crawler_type for a in alerts] == ["ClaudeBot"]

def test_recent_alerts_in_stats(clock):
    monitor = _monitor(clock, FakeSite())
    for i in range(60):
        monitor.analyze_health_checks([_check(success=False, url=f"http://site.test/{i}")])

    stats = monitor.get_health_stats()
    assert len(stats["recentAlerts"]) == 50
    assert stats["recentAlerts"][-1]["details"]["failedUrls"] == ["http://site.test/59"]
    assert set(stats["crawlerStats"]) >= {"totalRequests", "crawlerBreakdown"}


# ===== Chu kỳ giám sát =====

def test_monitoring_cycle_sends_webhook(clock):
    site = FakeSite(fail_paths=["/sitemap.xml"])
    monitor = _monitor(clock, site)
    config = DEFAULT_MONITORING_CONFIG.merged({"webhookUrl": "http://hooks.test/alerts"})

    result = asyncio.run(monitor.run_monitoring_cycle(config))

    assert len(result["healthChecks"]) == 9
    assert {a["crawlerType"] for a in result["alerts"]} == {"GPTBot", "Google-Extended", "ClaudeBot"}
    assert len(site.webhook_payloads) == 1
    payload = site.webhook_payloads[0]
    assert payload["service"] == "AI Crawler Monitor"
    assert len(payload["alerts"]) == len(result["alerts"])
    assert set(payload["alerts"][0]) == {"type", "crawler", "message", "timestamp"}

def test_monitoring_cycle_without_alerts_skips_webhook(clock):
    site = FakeSite()
    monitor = _monitor(clock, site)
    config = DEFAULT_MONITORING_CONFIG.merged({"webhookUrl": "http://hooks.test/alerts"})

    result = asyncio.run(monitor.run_monitoring_cycle(config))
    assert result["alerts"] == []
    assert site.webhook_payloads == []

def test_webhook_failure_does_not_break_cycle(clock):
    def handler(request):
        if request.url.host == "hooks.test":
            return httpx.Response(500)
        raise httpx.ConnectError("connection refused", request=request)

    monitor = CrawlerMonitor(transport=httpx.MockTransport(handler), clock=clock)
    config = DEFAULT_MONITORING_CONFIG.merged({"webhookUrl": "http://hooks.test/alerts"})
    result = asyncio.run(monitor.run_monitoring_cycle(config))
    assert len(result["alerts"]) == 3

    sent = asyncio.run(monitor.send_alert_notifications(
        monitor.analyze_health_checks([_check(success=False)]), "http://hooks.test/alerts",
    ))
    assert sent is False


# ===== Cấu hình =====

def test_default_config():
    data = DEFAULT_MONITORING_CONFIG.to_dict()
    assert data["checkInterval"] == 30
    assert data["alertThresholds"] == {"maxResponseTime": 5000, "minSuccessRate": 95, "maxErrorsPerHour": 10}
    assert [t["crawlerType"] for t in data["testUrls"]] == ["GPTBot", "Google-Extended", "ClaudeBot"]
    assert data["testUrls"][0]["urls"] == ["http://site.test/", "http://site.test/blog", "http://site.test/sitemap.xml"]

@pytest.mark.parametrize("partial", [
    {"unknownKey": 1},
    {"checkInterval": -1},
    {"alertThresholds": {"maxResponseTime": 1}},
    {"alertThresholds": {"maxResponseTime": 1, "minSuccessRate": 150, "maxErrorsPerHour": 1}},
    {"testUrls": "http://site.test/"},
])
def test_invalid_config_is_rejected(partial):
    with pytest.raises(ValueError):
        DEFAULT_MONITORING_CONFIG.merged(partial)


# ===== API =====

@pytest.fixture
def site(client):
    fake = FakeSite(statuses={"/blog": 404})
    client.app.state.crawler_monitor = CrawlerMonitor(transport=httpx.MockTransport(fake))
    return fake

def test_monitor_requires_admin(client):
    assert client.get(URL).status_code == 401
    assert client.post(URL, params={"action": "run-cycle"}).status_code == 401

def test_get_stats_is_default(client, admin_headers, site):
    for action in (None, "stats", "unknown"):
        params = {"action": action} if action else {}
        body = client.get(URL, params=params, headers=admin_headers).json()
        assert body["success"] is True
        assert set(body["data"]) == {"healthChecks", "recentAlerts", "crawlerStats"}

def test_get_config(client, admin_headers, site):
    data = client.get(URL, params={"action": "config"}, headers=admin_headers).json()["data"]
    assert data["alertThresholds"]["minSuccessRate"] == 95

def test_get_health_check(client, admin_headers, site):
    res = client.get(URL, params={"action": "health-check", "crawler": "Bingbot", "url": "http://site.test/blog"},
                     headers=admin_headers)
    data = res.json()["data"]
    assert data["crawlerType"] == "Bingbot"
    assert data["statusCode"] == 404
    assert data["success"] is False
    assert site.requests[-1].headers["user-agent"] == CRAWLER_USER_AGENTS["Bingbot"]

def test_get_health_check_defaults(client, admin_headers, site):
    data = client.get(URL, params={"action": "health-check"}, headers=admin_headers).json()["data"]
    assert data["crawlerType"] == "GPTBot"
    assert data["url"] == "http://site.test/"

def test_post_run_cycle(client, admin_headers, site):
    res = client.post(URL, params={"action": "run-cycle"}, headers=admin_headers, json={"config": {
        "testUrls": [{"crawlerType": "ClaudeBot", "urls": ["http://site.test/", "http://site.test/blog"]}],
    }})
    assert res.status_code == 200
    body = res.json()
    assert body["message"] == "Monitoring cycle completed. Checked 2 URLs, generated 1 alerts."
    assert body["data"]["alerts"][0]["message"] == "Low success rate: 50.0% (threshold: 95%)"

    stats = client.get(URL, params={"action": "stats"}, headers=admin_headers).json()["data"]
    assert len(stats["healthChecks"]["ClaudeBot"]) == 2
    assert len(stats["recentAlerts"]) == 1

def test_post_run_cycle_invalid_config(client, admin_headers, site):
    res = client.post(URL, params={"action": "run-cycle"}, headers=admin_headers,
                      json={"config": {"checkEvery": 5}})
    assert res.status_code == 400
    assert res.json()["detail"]["error"] == "Invalid configuration"
    assert site.requests == []

def test_post_test_crawler(client, admin_headers, site):
    res = client.post(URL, params={"action": "test-crawler"}, headers=admin_headers,
                      json={"crawlerType": "GPTBot", "url": "http://site.test/"})
    body = res.json()
    assert body["data"]["success"] is True
    assert body["message"] == "Health check completed for GPTBot on http://site.test/"

def test_post_test_crawler_missing_parameters(client, admin_headers, site):
    res = client.post(URL, params={"action": "test-crawler"}, headers=admin_headers, json={"crawlerType": "GPTBot"})
    assert res.status_code == 400
    assert res.json()["detail"]["error"] == "Missing required parameters"

def test_post_unknown_action(client, admin_headers, site):
    res = client.post(URL, params={"action": "nope"}, headers=admin_headers, json={})
    assert res.status_code == 400
    assert res.json()["detail"]["message"] == "Supported actions: run-cycle, test-crawler"
