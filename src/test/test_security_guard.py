from middlerware.security_guard import status_for_violations
from helpers import BROWSER_UA, CLAUDEBOT_UA, GPTBOT_UA


def _service(client):
    return client.app.state.crawler_security


def test_status_priority():
    assert status_for_violations(["blacklist", "rate_limit"]) == 429
    assert status_for_violations(["emergency_mode", "blacklist"]) == 403
    assert status_for_violations(["emergency_mode", "suspicious_pattern"]) == 404
    assert status_for_violations(["emergency_mode"]) == 503
    assert status_for_violations(["anomaly"]) == 403

def test_browser_passes_untouched(client):
    for _ in range(50):
        res = client.get("/healthz", headers={"User-Agent": BROWSER_UA})
        assert res.status_code == 200
    # Không tạo số liệu cho request không phải crawler IA
    assert len(_service(client).store) == 0

def test_crawler_burst_is_limited(client):
    """GPTBot có burst 10 → request thứ 11 trong 10 giây nhận 429"""
    headers = {"User-Agent": GPTBOT_UA, "X-Forwarded-For": "203.0.113.10"}
    codes = [client.get("/healthz", headers=headers).status_code for _ in range(11)]

    assert codes == [200] * 10 + [429]
    res = client.get("/healthz", headers=headers)
    assert res.status_code == 429
    assert res.text == "Access denied"

def test_suspicious_path_returns_404(client):
    res = client.get("/wp-admin/setup.php", headers={"User-Agent": GPTBOT_UA, "X-Forwarded-For": "203.0.113.11"})
    assert res.status_code == 404
    assert res.text == "Access denied"

    violation = _service(client).store.violations()[-1]
    assert violation.type == "suspicious_pattern"
    assert violation.details == {"pattern": "/wp-admin"}

def test_blacklisted_ip_returns_403(client):
    _service(client).update_blacklist("203.0.113.12", "add")
    res = client.get("/healthz", headers={"User-Agent": GPTBOT_UA, "X-Forwarded-For": "203.0.113.12, 10.0.0.1"})
    assert res.status_code == 403

def test_blacklist_matches_normalised_ipv6(client):
    _service(client).update_blacklist("2001:db8::1", "add")
    res = client.get("/healthz", headers={"User-Agent": GPTBOT_UA, "X-Forwarded-For": "2001:DB8:0:0::0001"})
    assert res.status_code == 403

def test_real_ip_header_is_used(client):
    _service(client).update_blacklist("198.51.100.7", "add")
    res = client.get("/healthz", headers={"User-Agent": GPTBOT_UA, "X-Real-IP": "198.51.100.7"})
    assert res.status_code == 403

def test_emergency_mode_returns_503(client):
    _service(client).set_emergency_mode(True, allowed_crawlers=["GPTBot"])
    headers = {"X-Forwarded-For": "203.0.113.13"}

    res = client.get("/healthz", headers={**headers, "User-Agent": CLAUDEBOT_UA})
    assert res.status_code == 503
    res = client.get("/healthz", headers={**headers, "User-Agent": GPTBOT_UA})
    assert res.status_code == 200

def test_whitelisted_crawler_is_not_rate_limited(client):
    _service(client).update_security_config({"ipWhitelist": ["203.0.113.14"]})
    headers = {"User-Agent": GPTBOT_UA, "X-Forwarded-For": "203.0.113.14"}
    codes = {client.get("/healthz", headers=headers).status_code for _ in range(30)}
    assert codes == {200}

def test_ipv6_whitelist_from_update_config_is_normalised(client, admin_headers):
    res = client.post("/api/admin/ai-crawler-security", params={"action": "update-config"},
                      headers=admin_headers, json={"config": {"ipWhitelist": ["2001:DB8::1"]}})
    assert res.status_code == 200

    headers = {"User-Agent": GPTBOT_UA, "X-Forwarded-For": "2001:db8::1"}
    codes = [client.get("/healthz", headers=headers).status_code for _ in range(15)]
    assert codes == [200] * 15

def test_ipv6_blacklist_from_update_config_is_normalised(client, admin_headers):
    client.post("/api/admin/ai-crawler-security", params={"action": "update-config"},
                headers=admin_headers, json={"config": {"ipBlacklist": ["2001:DB8:0:0::2"]}})

    res = client.get("/healthz", headers={"User-Agent": GPTBOT_UA, "X-Forwarded-For": "2001:db8::2"})
    assert res.status_code == 403
