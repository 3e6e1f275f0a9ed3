from datetime import datetime, timezone
from ipaddress import ip_address
from typing import Optional, Tuple

def _norm_ip(ip_raw: Optional[str]) -> Tuple[bool, Optional[str]]:
    """
    Chuẩn hoá chuỗi IP về dạng hợp lệ
    - Trả (True, ip đã chuẩn hoá) nếu parse được IPv4/IPv6
    - Trả (False, chuỗi gốc) nếu không parse được, (False, None) nếu rỗng
    """
    # Kiểm tra giá trị truyền vào tồn tại hay không và có phải là chuỗi string hay không
    if not ip_raw or not isinstance(ip_raw, str):
        return False, None

    try:
        return True, str(ip_address(ip_raw.strip()))  # Parse IPv4/IPv6; sai sẽ ném ValueError
    except ValueError:
        # Nếu không parse được, trả nguyên để không crash
        return False, ip_raw

def to_iso(ts: float) -> str:
    """
    Epoch (giây) -> chuỗi ISO-8601 theo UTC, dạng `2025-01-01T00:00:00.000Z`
    """
    dt = datetime.fromtimestamp(ts, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")

def from_iso(value: str) -> float:
    """
    Chuỗi ISO-8601 -> epoch (giây). Chuỗi không có múi giờ được coi là UTC.
    """
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()
