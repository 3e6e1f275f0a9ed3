import logging
import datetime as _dt
import json
import os
import time
import threading
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional
from dotenv import load_dotenv

from log.system_log import system_logger

load_dotenv()  # Tự động tìm và nạp file .env ở thư mục hiện tại


# Đường dẫn thư mục lưu trữ file log truy cập của crawler IA
LOG_DIRECTORY = os.getenv("LOG_DIRECTORY", "log")

# Số ngày giữ lại log truy cập
LOG_RETENTION_DAYS = int(os.getenv("LOG_RETENTION_DAYS", "30"))

# Tên tệp log trong mỗi thư mục ngày (mỗi dòng là 1 JSON)
CRAWLER_LOG_FILE = "crawler_log.jsonl"

# Định dạng tên thư mục ngày: DD-MM-YY
DAY_FORMAT = "%d-%m-%y"

# Tạo thư mục nếu chưa có
Path(LOG_DIRECTORY).mkdir(parents=True, exist_ok=True)


def _day_str(day: Optional[_dt.date] = None) -> str:
    return (day or _dt.datetime.now()).strftime(DAY_FORMAT)

def _log_file_path(day_str=None, logs_root=LOG_DIRECTORY):
    """
    Tạo thư mục <logs_root>/<DD-MM-YY>/ nếu chưa có.
    Trả về đường dẫn file 'crawler_log.jsonl' bên trong.
    Có fallback khi lỗi IO.
    """
    try:
        day = day_str or _day_str()
        log_dir = os.path.join(logs_root, day)
        os.makedirs(log_dir, exist_ok=True)
        return os.path.join(log_dir, CRAWLER_LOG_FILE)

    except OSError:
        # fallback
        fb_dir = os.path.join(logs_root, "fallback")
        os.makedirs(fb_dir, exist_ok=True)
        return os.path.join(fb_dir, CRAWLER_LOG_FILE)

def _remove_old_logs(logs_root=LOG_DIRECTORY, max_days=LOG_RETENTION_DAYS):
    """
    Xoá thư mục ngày cũ hơn max_days.
    Bỏ qua thư mục không đúng định dạng DD-MM-YY (vd: 'fallback', 'system_log').
    Trả về số thư mục đã xoá.
    """
    removed = 0
    if not os.path.exists(logs_root):
        return removed

    now = _dt.datetime.now()
    # Duyệt các thư mục trong đường dẫn chứa các thư mục log theo ngày
    for entry in os.listdir(logs_root):
        entry_path = os.path.join(logs_root, entry)
        if not os.path.isdir(entry_path):
            continue
        try:
            folder_date = _dt.datetime.strptime(entry, DAY_FORMAT)
        except ValueError:
            continue

        # Kiểm tra thời gian đã tạo thư mục
        if (now - folder_date).days > max_days:
            # Dọn rác không nên gây crash app
            shutil.rmtree(entry_path, ignore_errors=True)
            removed += 1

    return removed


# =========================
# Cấu hình logger truy cập của crawler & thread xoay theo ngày
# =========================

# Mỗi bản ghi là 1 dòng JSON, message đã được json.dumps sẵn ở middleware
_formatter = logging.Formatter("%(message)s")

# Logger truy cập của crawler IA
crawler_logger = logging.getLogger("crawler_logger")
crawler_logger.setLevel(logging.INFO)
crawler_logger.propagate = False  # Không đẩy lên root

# Handler đầu tiên khi khởi chạy phần mềm (ngày hiện tại)
_file_handler_lock = threading.Lock()
_current_day = _day_str()
_file_handler = logging.FileHandler(_log_file_path(_current_day), encoding="utf-8")
_file_handler.setFormatter(_formatter)
crawler_logger.addHandler(_file_handler)


def _rotate_if_new_day():
    """
    Kiểm tra nếu sang ngày mới:
    - Gỡ handler cũ, đóng file.
    - Dọn rác thư mục cũ.
    - Tạo handler mới cho ngày mới.
    Dùng lock để thay handler an toàn.
    """
    global _current_day, _file_handler
    day_now = _day_str()
    if day_now == _current_day:
        return

    with _file_handler_lock:
        # Kiểm tra lại trong lock để tránh race
        if day_now == _current_day:
            return

        # Tháo & đóng handler cũ
        crawler_logger.removeHandler(_file_handler)
        _file_handler.close()

        # Dọn rác log cũ
        _remove_old_logs()

        # Tạo handler mới
        _current_day = day_now
        new_handler = logging.FileHandler(_log_file_path(_current_day), encoding="utf-8")
        new_handler.setFormatter(_formatter)
        crawler_logger.addHandler(new_handler)
        _file_handler = new_handler


def _rotation_thread():
    """
    Thread nền: mỗi 1 tiếng kiểm tra xem có sang ngày mới chưa.
    (Không cần tick quá dày, tránh overhead)
    """
    while True:
        try:
            _rotate_if_new_day()
        except OSError as e:
            # Tuyệt đối không để thread chết âm thầm vì lỗi IO
            system_logger.error(f"Không thể xoay tệp log truy cập của crawler: {e}")

        time.sleep(3600)


def write_log_entry(entry: Dict[str, Any]) -> None:
    """
    Ghi 1 bản ghi truy cập của crawler (dict) thành 1 dòng JSON
    """
    crawler_logger.info(json.dumps(entry, ensure_ascii=False))


def read_log_entries(day: Optional[_dt.date] = None, logs_root: str = LOG_DIRECTORY) -> List[Dict[str, Any]]:
    """
    Đọc toàn bộ bản ghi của 1 ngày.
    - Không có tệp -> trả []
    - Dòng hỏng (không parse được JSON) -> bỏ qua
    """
    path = os.path.join(logs_root, _day_str(day), CRAWLER_LOG_FILE)
    if not os.path.exists(path):
        return []

    entries: List[Dict[str, Any]] = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                entries.append(json.loads(line))
            except json.JSONDecodeError:
                continue
    return entries


def get_crawler_stats(start: Optional[_dt.date] = None,
                      end: Optional[_dt.date] = None,
                      logs_root: str = LOG_DIRECTORY) -> Dict[str, Any]:
    """
    Thống kê truy cập của crawler trong khoảng [start, end] (mặc định 7 ngày gần nhất)
    Trả về:
    - totalRequests: tổng số request
    - uniqueUrls: số URL khác nhau
    - crawlerBreakdown: số request theo loại crawler
    - lastActivity: timestamp mới nhất ("" nếu không có)
    - averageResponseTime: thời gian phản hồi trung bình (ms)
    """
    end = end or _dt.date.today()
    start = start or (end - _dt.timedelta(days=7))

    total = 0
    urls = set()
    breakdown: Dict[str, int] = {}
    latest = ""
    rt_sum = 0.0
    rt_count = 0

    day = start
    while day <= end:
        for entry in read_log_entries(day, logs_root=logs_root):
            total += 1
            urls.add(entry.get("url"))

            crawler_type = entry.get("crawlerType", "Unknown")
            breakdown[crawler_type] = breakdown.get(crawler_type, 0) + 1

            if entry.get("responseTime"):
                rt_sum += float(entry["responseTime"])
                rt_count += 1

            ts = entry.get("timestamp") or ""
            if ts > latest:
                latest = ts
        day += _dt.timedelta(days=1)

    return {
        "totalRequests": total,
        "uniqueUrls": len(urls),
        "crawlerBreakdown": breakdown,
        "lastActivity": latest,
        "averageResponseTime": rt_sum / rt_count if rt_count else 0,
    }
