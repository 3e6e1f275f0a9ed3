import datetime as _dt
import json
import os
import uuid

from log.logging_config import (
    CRAWLER_LOG_FILE, DAY_FORMAT, _remove_old_logs, get_crawler_stats, read_log_entries,
)
from helpers import BROWSER_UA, GPTBOT_UA


def _write_day(root, day, entries, extra_lines=()):
    folder = root / day.strftime(DAY_FORMAT)
    folder.mkdir(parents=True, exist_ok=True)
    with open(folder / CRAWLER_LOG_FILE, "w", encoding="utf-8") as f:
        for entry in entries:
            f.write(json.dumps(entry) + "\n")
        for line in extra_lines:
            f.write(line + "\n")


def _find(marker):
    return [e for e in read_log_entries() if marker in e.get("url", "")]


def test_crawler_request_is_logged(client):
    marker = uuid.uuid4().hex
    res = client.get(f"/healthz?marker={marker}", headers={
        "User-Agent": GPTBOT_UA, "X-Forwarded-For": "203.0.113.50", "Referer": "https://example.com/",
    })
    assert res.status_code == 200

    entries = _find(marker)
    assert len(entries) == 1
    entry = entries[0]
    assert entry["crawlerType"] == "GPTBot"
    assert entry["statusCode"] == 200
    assert entry["method"] == "GET"
    assert entry["ip"] == "203.0.113.50"
    assert entry["referer"] == "https://example.com/"
    assert entry["timestamp"].endswith("Z")
    assert isinstance(entry["responseTime"], int)

def test_blocked_request_is_logged_with_status(client):
    marker = uuid.uuid4().hex
    client.get(f"/wp-admin/setup.php?marker={marker}", headers={"User-Agent": GPTBOT_UA})

    entries = _find(marker)
    assert [e["statusCode"] for e in entries] == [404]

def test_browser_request_is_not_logged(client):
    marker = uuid.uuid4().hex
    client.get(f"/healthz?marker={marker}", headers={"User-Agent": BROWSER_UA})
    assert _find(marker) == []

def test_crawler_stats(tmp_path):
    today = _dt.date(2025, 3, 10)
    yesterday = today - _dt.timedelta(days=1)
    _write_day(tmp_path, yesterday, [
        {"timestamp": "2025-03-09T10:00:00.000Z", "url": "http://x/a", "crawlerType": "GPTBot", "responseTime": 10},
        {"timestamp": "2025-03-09T11:00:00.000Z", "url": "http://x/b", "crawlerType": "ClaudeBot", "responseTime": 30},
    ])
    _write_day(tmp_path, today, [
        {"timestamp": "2025-03-10T09:00:00.000Z", "url": "http://x/a", "crawlerType": "GPTBot", "responseTime": 20},
    ], extra_lines=["{not json", ""])
    # Ngoài khoảng thống kê
    _write_day(tmp_path, today - _dt.timedelta(days=30), [
        {"timestamp": "2025-02-08T09:00:00.000Z", "url": "http://x/z", "crawlerType": "Bingbot", "responseTime": 5},
    ])

    stats = get_crawler_stats(start=today - _dt.timedelta(days=7), end=today, logs_root=str(tmp_path))
    assert stats == {
        "totalRequests": 3,
        "uniqueUrls": 2,
        "crawlerBreakdown": {"GPTBot": 2, "ClaudeBot": 1},
        "lastActivity": "2025-03-10T09:00:00.000Z",
        "averageResponseTime": 20,
    }

def test_crawler_stats_empty(tmp_path):
    stats = get_crawler_stats(logs_root=str(tmp_path))
    assert stats["totalRequests"] == 0
    assert stats["lastActivity"] == ""
    assert stats["averageResponseTime"] == 0

def test_remove_old_logs(tmp_path):
    old = (_dt.datetime.now() - _dt.timedelta(days=40)).strftime(DAY_FORMAT)
    recent = (_dt.datetime.now() - _dt.timedelta(days=2)).strftime(DAY_FORMAT)
    for name in (old, recent, "fallback", "system_log"):
        (tmp_path / name).mkdir()

    assert _remove_old_logs(str(tmp_path), max_days=30) == 1
    assert sorted(os.listdir(tmp_path)) == sorted([recent, "fallback", "system_log"])

def test_monitor_stats_include_access_log(client, admin_headers):
    client.get("/healthz", headers={"User-Agent": GPTBOT_UA})

    res = client.get("/api/admin/ai-crawler-monitor", params={"action": "stats"}, headers=admin_headers)
    assert res.status_code == 200
    stats = res.json()["data"]["crawlerStats"]
    assert stats["totalRequests"] >= 1
    assert stats["crawlerBreakdown"]["GPTBot"] >= 1
