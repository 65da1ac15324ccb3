import os

# Logging
LOG_LEVEL = os.getenv("AUDIT_LOG_LEVEL", "INFO").upper()

# Crawl
CRAWL_WORKERS = int(os.getenv("AUDIT_CRAWL_WORKERS", "4"))
CRAWL_TIMEOUT = float(os.getenv("AUDIT_CRAWL_TIMEOUT", "300"))
FETCH_TIMEOUT = float(os.getenv("AUDIT_FETCH_TIMEOUT", "15"))
USER_AGENT = os.getenv("AUDIT_USER_AGENT", "SiteAuditBot/1.0 (+https://example.com/bot)")
# Minimum seconds between requests to one host; robots.txt Crawl-delay can raise it up to the cap.
CRAWL_DELAY = float(os.getenv("AUDIT_CRAWL_DELAY", "0"))
MAX_CRAWL_DELAY = float(os.getenv("AUDIT_MAX_CRAWL_DELAY", "10"))

# Rendering
RENDERER = os.getenv("AUDIT_RENDERER", "playwright").lower()
RENDER_SETTLE_MS = int(os.getenv("AUDIT_RENDER_SETTLE_MS", "2500"))
RENDER_TIMEOUT_MS = int(os.getenv("AUDIT_RENDER_TIMEOUT_MS", "30000"))

# PageSpeed Insights
PAGESPEED_API_KEY = os.getenv("PAGESPEED_INSIGHTS_API_KEY", "")
PAGESPEED_MIN_INTERVAL = float(os.getenv("AUDIT_PAGESPEED_MIN_INTERVAL", "1.0"))
PAGESPEED_TIMEOUT = float(os.getenv("AUDIT_PAGESPEED_TIMEOUT", "90"))

# QA
QA_MAX_ATTEMPTS = int(os.getenv("AUDIT_QA_MAX_ATTEMPTS", "5"))
QA_TARGET_SCORE = int(os.getenv("AUDIT_QA_TARGET_SCORE", "9"))
