from typing import Optional
from fastapi import APIRouter, Body, Depends, Query, Request
from auth.oauth2 import required_admin
from controllers.crawler_monitor_controller import Crawler_Monitor_Controller
from controllers.security_admin_controller import _bad_request
from security.crawler_monitor import CrawlerMonitor


router = APIRouter(
    prefix="/api/admin/ai-crawler-monitor",
    tags=["AI Crawler Monitor"]
)


def get_crawler_monitor(request: Request) -> CrawlerMonitor:
    """Service giám sát dùng chung, được tạo 1 lần trong main và gắn vào app.state"""
    return request.app.state.crawler_monitor


@router.get("", summary="Xem kết quả giám sát / kiểm tra nhanh 1 crawler", response_model=dict)
async def get_monitor(action: Optional[str] = Query(None, description="stats | health-check | config"),
                      crawler: Optional[str] = Query(None, description="Loại crawler cho health-check, mặc định GPTBot"),
                      url: Optional[str] = Query(None, description="URL cho health-check, mặc định trang chủ của website"),
                      monitor: CrawlerMonitor = Depends(get_crawler_monitor),
                      admin_info: dict = Depends(required_admin)):
    """
    - **stats** (mặc định, kể cả action lạ): health check gần nhất, cảnh báo gần nhất, thống kê log truy cập
    - **health-check**: gửi 1 request tới `url` với User-Agent của `crawler`
    - **config**: cấu hình giám sát
    """
    if action == "health-check":
        return await Crawler_Monitor_Controller.health_check(monitor=monitor, crawler=crawler, url=url)
    if action == "config":
        return Crawler_Monitor_Controller.get_config(monitor=monitor)

    return Crawler_Monitor_Controller.get_stats(monitor=monitor)

@router.post("", summary="Chạy chu kỳ giám sát / kiểm tra 1 URL", response_model=dict)
async def post_monitor(action: Optional[str] = Query(None, description="run-cycle | test-crawler"),
                       body: dict = Body(default={}),
                       monitor: CrawlerMonitor = Depends(get_crawler_monitor),
                       admin_info: dict = Depends(required_admin)):
    """
    - **run-cycle**: `{"config": {...}}` (tuỳ chọn), health check mọi URL, sinh cảnh báo, gửi webhook
    - **test-crawler**: `{"crawlerType": "ClaudeBot", "url": "https://..."}`
    """
    if action == "run-cycle":
        return await Crawler_Monitor_Controller.run_cycle(monitor=monitor, body=body)
    if action == "test-crawler":
        return await Crawler_Monitor_Controller.test_crawler(monitor=monitor, body=body)

    raise _bad_request("Invalid action", "Supported actions: run-cycle, test-crawler")
