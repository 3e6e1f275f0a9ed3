from fastapi import FastAPI, Request # pip install "fastapi[standard]"
import time
import uvicorn
import threading
import os
from starlette.middleware.base import BaseHTTPMiddleware
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from log.system_log import system_logger, _rotation_thread
from log import logging_config
from api import health_check, security_admin, crawler_monitor
from middlerware import logger
from middlerware.security_guard import security_guard  # # Middleware phòng thủ crawler IA
from auth import authentication
from security.crawler_monitor import CrawlerMonitor
from security.crawler_security import CrawlerSecurityService
from utils.utils import to_iso
from dotenv import load_dotenv

load_dotenv()  # Tự động tìm và nạp file .env ở thư mục hiện tại


PORT_HOST = os.getenv("PORT_HOST", "8000")

# Danh sách origin được phép gọi API, phân tách bằng dấu phẩy
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000")

# Ép kiểu để port là số nguyên
PORT = int(PORT_HOST)

# Khởi động thread nền tạo file log cho ngày mới (ko gọi trong module log vì mỗi khi import nó lại mở 1 thread, chỉ nên gọi 1 lần ở main)
log_thread = threading.Thread(target=_rotation_thread, name="DailySystemLogRotationThread", daemon=True)
log_thread.start()

crawler_log_thread = threading.Thread(target=logging_config._rotation_thread, name="DailyCrawlerLogRotationThread", daemon=True)
crawler_log_thread.start()


# Khởi tại FastAPi
app = FastAPI(
    docs_url="/myapi",  # Đặt đường dẫn Swagger UI thành "/myapi"
    redoc_url=None,  # Tắt Redoc UI
)

# Service bảo mật dùng chung cho middleware và API quản trị
app.state.crawler_security = CrawlerSecurityService()

# Service giám sát crawler (health check, cảnh báo) cho API ai-crawler-monitor
app.state.crawler_monitor = CrawlerMonitor()

# Đăng ký middleware bảo vệ (đặt càng sớm càng tốt)
app.middleware("http")(security_guard)

# Middleware ghi log được thêm sau nên nằm ngoài cùng: ghi cả request bị security_guard chặn
app.add_middleware(BaseHTTPMiddleware, dispatch=logger.log_crawler_requests)

# Thêm các endpoint ở đây
app.include_router(health_check.router)
app.include_router(authentication.router)
app.include_router(security_admin.router)
app.include_router(crawler_monitor.router)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """
    Lỗi không lường trước -> ghi log hệ thống, trả 500 theo định dạng chung
    """
    system_logger.exception(f"Lỗi không xử lý được tại {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "message": "Failed to process request",
            "timestamp": to_iso(time.time()),
        },
    )

"""
Cho phép các trang web, app, api trên cùng 1 máy tính có thể truy cập đến api này
Mặc định các api trên cùng 1 máy không thể chia sẻ tài nguyên cho nhau
"""
origins = [origin.strip() for origin in CORS_ORIGINS.split(",") if origin.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins = origins,
    allow_credentials = True,
    allow_methods = ["*"],
    allow_headers = ["*"]
)

if __name__ == "__main__":
    uvicorn.run("__main__:app", host="0.0.0.0", port=PORT)

    # Hoặc gõ trực tiếp lệnh `fastapi dev src/main.py` để vào chế độ developer
