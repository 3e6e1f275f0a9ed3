from fastapi import Request
from fastapi.responses import PlainTextResponse

from log.system_log import system_logger
from security.crawler_detector import identify_crawler, is_ai_crawler
from security.models import BLACKLIST, EMERGENCY_MODE, RATE_LIMIT, SUSPICIOUS_PATTERN
from utils.get_ip_client import get_client_ip
from utils.utils import _norm_ip


# Mã trả về theo loại vi phạm, theo thứ tự ưu tiên khi 1 request có nhiều vi phạm
STATUS_BY_VIOLATION = (
    (RATE_LIMIT, 429),           # Too Many Requests
    (BLACKLIST, 403),            # Forbidden
    (SUSPICIOUS_PATTERN, 404),   # Not Found (ẩn sự tồn tại của đường dẫn)
    (EMERGENCY_MODE, 503),       # Service Unavailable
)

DEFAULT_DENY_STATUS = 403


def status_for_violations(violation_types) -> int:
    """Chọn mã HTTP cho request bị chặn dựa trên loại vi phạm"""
    for violation_type, status_code in STATUS_BY_VIOLATION:
        if violation_type in violation_types:
            return status_code
    return DEFAULT_DENY_STATUS


async def security_guard(request: Request, call_next):
    """
    Middleware:
    - Request không phải crawler IA -> cho qua, không can thiệp.
    - Crawler IA -> nhận diện loại crawler, phân tích bảo mật (blacklist, emergency, pattern, rate limit).
    - Bị chặn -> trả "Access denied" với mã theo loại vi phạm (429/403/404/503), không vào handler.
    """
    user_agent = request.headers.get("user-agent", "")

    # 1) Chỉ kiểm tra crawler IA
    if not is_ai_crawler(user_agent):
        return await call_next(request)

    crawler_type = identify_crawler(user_agent)

    # Chuẩn hoá IP để so khớp với blacklist/whitelist; không parse được thì giữ nguyên chuỗi gốc
    _, client_ip = _norm_ip(get_client_ip(request))

    # 2) Phân tích bằng service dùng chung của app
    service = request.app.state.crawler_security
    analysis = service.analyze_request(
        ip=client_ip,
        user_agent=user_agent,
        path=request.url.path,
        crawler_type=crawler_type,
    )

    # 3) Bị chặn -> trả lỗi ngay
    if not analysis.allowed:
        status_code = status_for_violations(analysis.violation_types)
        system_logger.warning(
            "[SECURITY-BLOCKED] %s từ %s bị chặn (%s): %s",
            crawler_type, client_ip, status_code, ", ".join(analysis.violation_types),
        )
        return PlainTextResponse("Access denied", status_code=status_code)

    # 4) Hợp lệ -> cho request đi qua
    return await call_next(request)
