from typing import Optional
from fastapi import HTTPException, status, Request
from datetime import datetime, timedelta, timezone
from jose import jwt # pip install python-jose
from jose.exceptions import JWTError
from dotenv import load_dotenv
import os

load_dotenv()  # Tự động tìm và nạp file .env ở thư mục hiện tại


# Tên cookie lưu phiên đăng nhập của admin
COOKIE_NAME = "admin_session"

# Khóa bí mật, nên tạo nó ngẫu nhiên bằng cách sau
# mở terminal và chạy lệnh: openssl rand -hex 32
# Chỉ những bên có ADMIN_SESSION_SECRET mới có thể xác thực và giải mã token.
def _secret_key() -> Optional[str]:
    return os.getenv("ADMIN_SESSION_SECRET")

def _algorithm() -> str:
    return os.getenv("ALGORITHM", "HS256")

def session_days() -> int:
    return int(os.getenv("ADMIN_SESSION_DAYS", "7"))

# Bật khi chạy production sau HTTPS: trình duyệt chỉ gửi cookie admin_session qua kết nối bảo mật
def cookie_secure() -> bool:
    return os.getenv("ADMIN_COOKIE_SECURE", "false").strip().lower() in ("1", "true", "yes", "on")

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    """
    Tạo token với tiêu chuẩn JWT (HS256)
    - **data: dict**: dữ liệu đính kèm, với admin là `{"sub": email}`
    - **expires_delta**: Thời gian hết hạn của token, mặc định là ADMIN_SESSION_DAYS ngày
    """
    secret = _secret_key()
    if not secret:
        raise RuntimeError("Thiếu biến môi trường ADMIN_SESSION_SECRET")

    # Tạo một bản sao data để thao tác, ko ảnh hưởng đến data gốc
    to_encode = data.copy()

    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(days=session_days()))
    to_encode.update({"iat": now, "exp": expire})

    return jwt.encode(to_encode, secret, algorithm=_algorithm())

def get_token_from_request(request: Request) -> Optional[str]:
    """
    Rút token theo thứ tự ưu tiên:
    1) Header Authorization: Bearer <token>
    2) Cookie admin_session (HttpOnly, do /api/admin/login đặt)
    """
    authz = (request.headers.get("authorization") or "").strip()
    if authz.lower().startswith("bearer "):
        return authz[7:].strip() or None

    cookie = request.cookies.get(COOKIE_NAME)
    if cookie and cookie.strip():
        return cookie.strip()
    return None

# Khi sử dụng hàm này thì bất cứ api nào yêu cầu xác thực, nếu người dùng ko truyền token vào thì trả về lỗi 401
def required_admin(request: Request) -> dict:
    """
    Xác thực admin dựa vào token
    - `jwt.decode(token, secret, algorithms=[ALGORITHM])` kiểm tra chữ ký và thời gian hết hạn (exp)
    - Trả về {"Email": ...} nếu hợp lệ
    """
    credentials_exception = HTTPException(
        status_code= status.HTTP_401_UNAUTHORIZED,
        detail= {
            "message": "Không thể xác thực phiên đăng nhập của admin"
        },
        headers= {"WWW-Authenticate": "Bearer"}
    )

    token = get_token_from_request(request)
    secret = _secret_key()
    if not token or not secret:
        raise credentials_exception

    try:
        payload = jwt.decode(token, secret, algorithms= [_algorithm()])
    except JWTError:
        raise credentials_exception

    email = payload.get("sub")
    if not email:
        raise credentials_exception

    return {"Email": email}
