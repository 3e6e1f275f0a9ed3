"""Dữ liệu dùng chung cho các test"""

# 2023-11-14T22:13:20Z
START_TS = 1_700_000_000.0

GPTBOT_UA = "Mozilla/5.0 AppleWebKit/537.36 (KHTML, like Gecko; compatible; GPTBot/1.2; +https://openai.com/gptbot)"
CLAUDEBOT_UA = "Mozilla/5.0 (compatible; ClaudeBot/1.0; +claudebot@anthropic.com)"
BROWSER_UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 Chrome/120.0 Safari/537.36"

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "s3cret-password"
