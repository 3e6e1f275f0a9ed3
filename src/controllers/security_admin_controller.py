import time
from typing import Any, Optional
from fastapi import HTTPException, status
from pydantic import BaseModel, ValidationError
from log.system_log import system_logger
from schemas.schemas import (
    BlacklistRequest, EmergencyModeRequest, RateLimitsRequest, UpdateConfigRequest
)
from security.crawler_security import CrawlerSecurityService
from utils.utils import _norm_ip, to_iso


def _envelope(data: Any = None, message: Optional[str] = None) -> dict:
    """Định dạng phản hồi chung: {success, data?, message?, timestamp}"""
    out = {"success": True}
    if data is not None:
        out["data"] = data
    if message is not None:
        out["message"] = message
    out["timestamp"] = to_iso(time.time())
    return out

def _bad_request(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={
            "success": False,
            "error": error,
            "message": message,
            "timestamp": to_iso(time.time()),
        }
    )

def _parse(model: type, body: dict, error: str) -> BaseModel:
    """Validate body theo schema, sai -> 400 kèm mô tả lỗi đầu tiên"""
    try:
        return model.model_validate(body or {})
    except ValidationError as ex:
        first = ex.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ()))
        raise _bad_request(error, f"{field}: {first.get('msg')}" if field else first.get("msg"))


class Security_Admin_Controller:
    """
    Controller xử lý các thao tác quản trị bảo mật crawler IA
    Quyền admin đã được kiểm tra ở router (required_admin)
    """

    def get_stats(service: CrawlerSecurityService) -> dict:
        return _envelope(data=service.get_security_stats())

    def get_config(service: CrawlerSecurityService) -> dict:
        return _envelope(data=service.config.to_dict())

    def cleanup(service: CrawlerSecurityService, message: str = "Old data cleaned up successfully") -> dict:
        removed = service.cleanup_old_data()
        return _envelope(data={"removedCrawlers": removed}, message=message)

    def update_config(service: CrawlerSecurityService, body: dict) -> dict:
        """
        Cập nhật 1 phần cấu hình (shallow merge vào cấu hình đang hiệu lực)
        - body: {"config": {...}}
        """
        if not body or not body.get("config"):
            raise _bad_request("Missing configuration", "config parameter is required")

        request = _parse(UpdateConfigRequest, body, "Invalid configuration")
        partial = request.config.model_dump(exclude_unset=True)

        try:
            new_config = service.update_security_config(partial)
        except ValueError as ex:
            raise _bad_request("Invalid configuration", str(ex))

        return _envelope(data=new_config.to_dict(), message="Security configuration updated successfully")

    def emergency_mode(service: CrawlerSecurityService, body: dict) -> dict:
        """
        Bật/tắt chế độ khẩn cấp
        - body: {enabled, allowedCrawlers?, maxRequestsPerMinute?}
        """
        request = _parse(EmergencyModeRequest, body, "Invalid parameters")
        new_config = service.set_emergency_mode(
            enabled=request.enabled,
            allowed_crawlers=request.allowedCrawlers,
            max_requests_per_minute=request.maxRequestsPerMinute,
        )
        system_logger.warning("Chế độ khẩn cấp: %s", "BẬT" if request.enabled else "TẮT")
        return _envelope(
            data=new_config.emergency_mode.to_dict(),
            message=f"Emergency mode {'enabled' if request.enabled else 'disabled'}",
        )

    def blacklist(service: CrawlerSecurityService, body: dict) -> dict:
        """
        Thêm/gỡ 1 IP khỏi danh sách đen
        - body: {ip, operation: "add" | "remove"}
        """
        if not body or not body.get("ip") or not body.get("operation"):
            raise _bad_request("Missing parameters", "ip and operation (add/remove) are required")

        request = _parse(BlacklistRequest, body, "Invalid parameters")

        # Chuẩn hoá + validate IP
        is_ip, norm_ip = _norm_ip(ip_raw=request.ip)
        if not is_ip:
            raise _bad_request("Invalid IP", f"Địa chỉ IP không hợp lệ: {request.ip}")

        try:
            new_config = service.update_blacklist(norm_ip, request.operation)
        except ValueError:
            raise _bad_request("Invalid operation", 'operation must be "add" or "remove"')

        action = "added to" if request.operation == "add" else "removed from"
        return _envelope(
            data={"ipBlacklist": sorted(new_config.ip_blacklist)},
            message=f"IP {norm_ip} {action} blacklist",
        )

    def rate_limits(service: CrawlerSecurityService, body: dict) -> dict:
        """
        Cập nhật hạn mức của 1 loại crawler
        - body: {crawlerType, limits: {requestsPerMinute?, requestsPerHour?, requestsPerDay?, burstLimit?}}
        """
        if not body or not body.get("crawlerType") or body.get("limits") is None:
            raise _bad_request("Missing parameters", "crawlerType and limits are required")

        request = _parse(RateLimitsRequest, body, "Invalid parameters")
        limits = request.limits.model_dump(exclude_none=True)

        try:
            new_limits = service.update_rate_limits(request.crawlerType, limits)
        except ValueError as ex:
            raise _bad_request("Invalid parameters", str(ex))

        return _envelope(
            data={"crawlerType": request.crawlerType, "limits": new_limits.to_dict()},
            message=f"Rate limits updated for {request.crawlerType}",
        )

    def reset_violations(service: CrawlerSecurityService) -> dict:
        service.reset_violations()
        return _envelope(message="Violation history reset successfully")

    def reset_config(service: CrawlerSecurityService) -> dict:
        new_config = service.reset_security_config()
        return _envelope(data=new_config.to_dict(), message="Security configuration reset to defaults")
