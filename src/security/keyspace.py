"""
Tập trung hoá việc tạo TÊN KHOÁ cho store bảo mật crawler.
Mọi nơi khác chỉ GỌI HÀM ở đây -> nếu đổi format key, ta chỉ sửa file này.
"""

def k_crawler(ip: str, crawler_type: str) -> str:
    """
    Khoá duy nhất cho 1 crawler (IP + loại crawler).
    Ví dụ: 203.0.113.10:GPTBot
    Cùng 1 IP nhưng khác loại crawler sẽ có số liệu và hạn mức riêng.
    """
    return f"{ip}:{crawler_type}"
