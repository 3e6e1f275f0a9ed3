from fastapi import Request

def get_client_ip(request: Request) -> str:
    """
    Nhận 1 request từ FastAPI và trả về địa chỉ IP của client
    - Nếu có X-Forwarded-For: lấy phần tử đầu (client gốc). Vì nếu triển khai sau Nginx/Vercel thì ưu tiên X-Forwarded-For
    - Nếu có X-Real-IP: dùng giá trị này
    - Else: request.client.host, nếu không có thì trả "unknown"
    """
    xff = request.headers.get("x-forwarded-for")
    if xff:
        # format: "client, proxy1, proxy2"
        first = xff.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    client = request.client
    return client.host if client and client.host else "unknown"
