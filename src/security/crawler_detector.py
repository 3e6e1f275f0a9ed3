import re
from typing import Optional

"""
Nhận diện crawler IA dựa trên User-Agent.
Thứ tự trong AI_CRAWLERS là thứ tự ưu tiên khi 1 User-Agent khớp nhiều mẫu.
"""

AI_CRAWLERS = {
    "GPTBot": re.compile(r"GPTBot", re.IGNORECASE),
    "Google-Extended": re.compile(r"Google-Extended", re.IGNORECASE),
    "ClaudeBot": re.compile(r"ClaudeBot", re.IGNORECASE),
    "ChatGPT-User": re.compile(r"ChatGPT-User", re.IGNORECASE),
    "Bingbot": re.compile(r"bingbot", re.IGNORECASE),
}

UNKNOWN_CRAWLER = "Unknown"


def identify_crawler(user_agent: Optional[str]) -> str:
    """Trả về loại crawler, không khớp mẫu nào thì trả "Unknown" """
    for crawler_type, pattern in AI_CRAWLERS.items():
        if pattern.search(user_agent or ""):
            return crawler_type
    return UNKNOWN_CRAWLER

def is_ai_crawler(user_agent: Optional[str]) -> bool:
    return identify_crawler(user_agent) != UNKNOWN_CRAWLER
