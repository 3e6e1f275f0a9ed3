import os
import secrets
from fastapi import APIRouter, HTTPException, status, Response
from log.system_log import system_logger
from schemas.schemas import AdminLogin
from auth import oauth2


router = APIRouter(
    prefix="/api/admin",
    tags=["authentication"]
)


@router.post("/login")
def login(request: AdminLogin, response: Response):
    """
    Đăng nhập admin, tạo token có thời gian tồn tại để truy vấn các API quản trị
    - **request**: JSON gồm `email` và `password`, so với biến môi trường `ADMIN_EMAIL` / `ADMIN_PASSWORD`
    Token được đặt vào cookie HttpOnly `admin_session` và trả về trong body để dùng với header Bearer
    ### Ví dụ

    ```python
    import httpx

    url_login = "http://127.0.0.1:8000/api/admin/login"
    data = {
        "email": "admin@example.com",
        "password": "123456789"
    }
    res = httpx.post(url_login, json= data)
    token = res.json().get("access_token")

    print(token)
    ```
    """
    admin_email = os.getenv("ADMIN_EMAIL")
    admin_password = os.getenv("ADMIN_PASSWORD")
    if not admin_email or not admin_password or not os.getenv("ADMIN_SESSION_SECRET"):
        system_logger.error("Thiếu biến môi trường ADMIN_EMAIL / ADMIN_PASSWORD / ADMIN_SESSION_SECRET")
        raise HTTPException(
            status_code= status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": "Tài khoản admin chưa được cấu hình trên máy chủ"
            }
        )

    # So sánh thời gian hằng để không lộ thông tin qua thời gian phản hồi
    email_ok = secrets.compare_digest(request.email.encode("utf-8"), admin_email.encode("utf-8"))
    password_ok = secrets.compare_digest(request.password.encode("utf-8"), admin_password.encode("utf-8"))
    if not (email_ok and password_ok):
        system_logger.warning(f"Đăng nhập admin thất bại với email: {request.email}")
        raise HTTPException(
            status_code= status.HTTP_401_UNAUTHORIZED,
            detail={
                "message": "Email hoặc mật khẩu không chính xác"
            }
        )

    access_token = oauth2.create_access_token(data= {"sub": admin_email})

    response.set_cookie(
        key= oauth2.COOKIE_NAME,
        value= access_token,
        max_age= oauth2.session_days() * 24 * 60 * 60,
        httponly= True,
        secure= oauth2.cookie_secure(),
        samesite= "lax",
        path= "/",
    )

    return {
        "ok": True,
        "access_token": access_token,
        "token_type": "Bearer", # token tiêu chuẩn: bearer
    }

@router.post("/logout")
def logout(response: Response):
    """
    Xoá cookie phiên đăng nhập admin
    """
    response.delete_cookie(key= oauth2.COOKIE_NAME, path= "/", secure= oauth2.cookie_secure(), httponly= True, samesite= "lax")
    return {"ok": True}
