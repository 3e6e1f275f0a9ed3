from fastapi import APIRouter, Depends, Body, Query, Request
from auth.oauth2 import required_admin
from controllers.security_admin_controller import Security_Admin_Controller, _bad_request
from security.crawler_security import CrawlerSecurityService


router = APIRouter(
    prefix="/api/admin/ai-crawler-security",
    tags=["AI Crawler Security"]
)


def get_security_service(request: Request) -> CrawlerSecurityService:
    """Service bảo mật dùng chung, được tạo 1 lần trong main và gắn vào app.state"""
    return request.app.state.crawler_security


@router.get("", summary="Xem thống kê / cấu hình, dọn dữ liệu cũ", response_model=dict)
def get_security(action: str = Query("stats", description="stats | config | cleanup"),
                 service: CrawlerSecurityService = Depends(get_security_service),
                 admin_info: dict = Depends(required_admin)):
    """
    - **stats**: tổng vi phạm, crawler đang hoạt động (1h), vi phạm gần nhất, top vi phạm (24h)
    - **config**: cấu hình bảo mật đang hiệu lực
    - **cleanup**: xoá metrics của crawler không hoạt động quá 7 ngày
    """
    if action == "stats":
        return Security_Admin_Controller.get_stats(service=service)
    if action == "config":
        return Security_Admin_Controller.get_config(service=service)
    if action == "cleanup":
        return Security_Admin_Controller.cleanup(service=service)

    raise _bad_request("Invalid action", "Supported actions: stats, config, cleanup")

@router.post("", summary="Thay đổi cấu hình bảo mật", response_model=dict)
def post_security(action: str = Query(..., description="update-config | emergency-mode | blacklist | rate-limits"),
                  body: dict = Body(default={}),
                  service: CrawlerSecurityService = Depends(get_security_service),
                  admin_info: dict = Depends(required_admin)):
    """
    - **update-config**: `{"config": {...}}` thay các khoá cấp 1 được gửi lên
    - **emergency-mode**: `{"enabled": true, "allowedCrawlers": [...], "maxRequestsPerMinute": 5}`
    - **blacklist**: `{"ip": "1.2.3.4", "operation": "add" | "remove"}`
    - **rate-limits**: `{"crawlerType": "GPTBot", "limits": {"requestsPerMinute": 10}}`
    """
    if action == "update-config":
        return Security_Admin_Controller.update_config(service=service, body=body)
    if action == "emergency-mode":
        return Security_Admin_Controller.emergency_mode(service=service, body=body)
    if action == "blacklist":
        return Security_Admin_Controller.blacklist(service=service, body=body)
    if action == "rate-limits":
        return Security_Admin_Controller.rate_limits(service=service, body=body)

    raise _bad_request("Invalid action", "Supported actions: update-config, emergency-mode, blacklist, rate-limits")

@router.delete("", summary="Dọn dữ liệu / đặt lại trạng thái", response_model=dict)
def delete_security(action: str = Query(..., description="cleanup | reset-violations | reset-config"),
                    service: CrawlerSecurityService = Depends(get_security_service),
                    admin_info: dict = Depends(required_admin)):
    if action == "cleanup":
        return Security_Admin_Controller.cleanup(service=service, message="Data cleanup completed")
    if action == "reset-violations":
        return Security_Admin_Controller.reset_violations(service=service)
    if action == "reset-config":
        return Security_Admin_Controller.reset_config(service=service)

    raise _bad_request("Invalid action", "Supported actions: cleanup, reset-violations, reset-config")
