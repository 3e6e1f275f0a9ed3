import logging
import shutil
import threading
import time
import os
from datetime import datetime
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()  # Tự động tìm và nạp file .env ở thư mục hiện tại


# Thư mục gốc của log hệ thống, mỗi ngày 1 thư mục con DD-MM-YY
SYSTEM_LOG_DIRECTORY = os.getenv("SYSTEM_LOG_DIRECTORY", "log/system_log")

# Dùng chung số ngày lưu giữ với log truy cập của crawler
SYSTEM_LOG_RETENTION_DAYS = int(os.getenv("LOG_RETENTION_DAYS", "30"))

SYSTEM_LOG_FILE = "system_log.log"
DAY_FORMAT = "%d-%m-%y"

Path(SYSTEM_LOG_DIRECTORY).mkdir(parents=True, exist_ok=True)

# Logger ứng dụng: lỗi, cảnh báo bảo mật, thao tác quản trị
system_logger = logging.getLogger("system_logger")
system_logger.setLevel(logging.INFO)


def _remove_old_logs(logs_root=SYSTEM_LOG_DIRECTORY, max_days=SYSTEM_LOG_RETENTION_DAYS) -> int:
    """
    Xoá các thư mục ngày cũ hơn max_days, trả về số thư mục đã xoá.
    Thư mục không đúng định dạng ngày thì bỏ qua.
    """
    removed = 0
    if not os.path.exists(logs_root):
        return removed

    now = datetime.now()
    for entry in os.listdir(logs_root):
        entry_path = os.path.join(logs_root, entry)
        if not os.path.isdir(entry_path):
            continue
        try:
            folder_date = datetime.strptime(entry, DAY_FORMAT)
        except ValueError:
            continue

        if (now - folder_date).days > max_days:
            try:
                shutil.rmtree(entry_path)
            except OSError as e:
                system_logger.error(f"Không thể xoá thư mục log hệ thống {entry_path}: {e}")
                continue
            system_logger.info(f"Đã xóa thư mục chứa log hệ thống: {entry_path}")
            removed += 1
    return removed

# Formatter: Định dạng log với đầy đủ các thông tin
_formatter = logging.Formatter(
    '%(asctime)s %(levelname)s:\t %(filename)s - Line: %(lineno)d message: %(message)s',
    datefmt='%d/%m/%Y %H:%M:%S %p'
)

def _log_file_path(day_str: str) -> str:
    log_dir = os.path.join(SYSTEM_LOG_DIRECTORY, day_str)
    os.makedirs(log_dir, exist_ok=True)
    return os.path.join(log_dir, SYSTEM_LOG_FILE)

def _new_handler(day_str: str) -> logging.FileHandler:
    handler = logging.FileHandler(_log_file_path(day_str), encoding="utf-8")
    handler.setFormatter(_formatter)
    return handler


# Handler cho ngày hiện tại
_handler_lock = threading.Lock()
_current_day = datetime.now().strftime(DAY_FORMAT)
_file_handler = _new_handler(_current_day)
system_logger.addHandler(_file_handler)


def _rotate_if_new_day():
    """Sang ngày mới: thay handler sang thư mục mới rồi dọn thư mục cũ"""
    global _current_day, _file_handler
    day_now = datetime.now().strftime(DAY_FORMAT)
    if day_now == _current_day:
        return

    with _handler_lock:
        if day_now == _current_day:
            return

        new_handler = _new_handler(day_now)
        system_logger.removeHandler(_file_handler)
        _file_handler.close()
        system_logger.addHandler(new_handler)
        _file_handler = new_handler
        _current_day = day_now

    _remove_old_logs()

# Thread nền kiểm tra ngày mới (khởi động 1 lần duy nhất ở main)
def _rotation_thread():
    while True:
        try:
            _rotate_if_new_day()
        except OSError as e:
            system_logger.error(f"Không thể xoay tệp log hệ thống: {e}")
        time.sleep(3600)  # Kiểm tra mỗi 1 tiếng
