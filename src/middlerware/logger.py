import time
from typing import Any, Dict, Optional

from fastapi import Request

from log.logging_config import write_log_entry
from security.crawler_detector import identify_crawler, is_ai_crawler
from utils.get_ip_client import get_client_ip
from utils.utils import to_iso


def _content_length(request: Request) -> Optional[int]:
    raw = request.headers.get("content-length")
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def build_log_entry(request: Request, status_code: int, response_time_ms: int) -> Dict[str, Any]:
    """
    Tạo 1 bản ghi truy cập của crawler IA từ request
    """
    user_agent = request.headers.get("user-agent", "Unknown")
    return {
        "timestamp": to_iso(time.time()),
        "userAgent": user_agent,
        "crawlerType": identify_crawler(user_agent),
        "url": str(request.url),
        "method": request.method,
        "statusCode": status_code,
        "responseTime": response_time_ms,
        "ip": get_client_ip(request),
        "referer": request.headers.get("referer"),
        "contentLength": _content_length(request),
    }


async def log_crawler_requests(request: Request, call_next):
    """
    Middleware ghi log cho MỖI request của crawler IA (kể cả request bị security_guard chặn).
    - Request không phải crawler IA -> cho qua, không ghi log.
    - Đo thời gian xử lý, ghi 1 dòng JSON vào log truy cập của ngày hiện tại.
    - Handler lỗi -> vẫn ghi log với status 500 rồi ném lại để FastAPI xử lý.
    """
    if not is_ai_crawler(request.headers.get("user-agent", "")):
        return await call_next(request)

    start = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        duration_ms = int((time.perf_counter() - start) * 1000)
        write_log_entry(build_log_entry(request, 500, duration_ms))
        # Re-raise để FastAPI vẫn xử lý error pipeline
        raise

    duration_ms = int((time.perf_counter() - start) * 1000)
    write_log_entry(build_log_entry(request, response.status_code, duration_ms))
    return response
