import os
import tempfile

from helpers import ADMIN_EMAIL, ADMIN_PASSWORD, START_TS

# Biến môi trường phải có trước khi import các module của app (module log tạo thư mục ngay khi import)
_LOG_ROOT = tempfile.mkdtemp(prefix="crawler_guard_test_")
os.environ["LOG_DIRECTORY"] = os.path.join(_LOG_ROOT, "log")
os.environ["SYSTEM_LOG_DIRECTORY"] = os.path.join(_LOG_ROOT, "log", "system_log")
os.environ["ADMIN_EMAIL"] = ADMIN_EMAIL
os.environ["ADMIN_PASSWORD"] = ADMIN_PASSWORD
os.environ["ADMIN_SESSION_SECRET"] = "test-session-secret-0123456789abcdef"
os.environ["ADMIN_COOKIE_SECURE"] = "false"
os.environ["MONITOR_SITE_URL"] = "http://site.test"
os.environ.pop("MONITOR_WEBHOOK_URL", None)

import pytest
from fastapi.testclient import TestClient

from security.crawler_monitor import CrawlerMonitor
from security.crawler_security import CrawlerSecurityService


class FakeClock:
    """Đồng hồ giả: chỉ tiến khi test gọi advance()"""

    def __init__(self, start: float = START_TS):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()

@pytest.fixture
def service(clock):
    """Service độc lập cho mỗi test, dùng đồng hồ giả"""
    return CrawlerSecurityService(clock=clock)

@pytest.fixture
def client():
    """
    TestClient của app, mỗi test có 1 service bảo mật mới trên app.state
    """
    import main
    main.app.state.crawler_security = CrawlerSecurityService()
    main.app.state.crawler_monitor = CrawlerMonitor()
    return TestClient(main.app)

@pytest.fixture
def admin_headers(client):
    """Đăng nhập admin và trả header Bearer"""
    res = client.post("/api/admin/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert res.status_code == 200
    client.cookies.clear()
    return {"Authorization": f"Bearer {res.json()['access_token']}"}
