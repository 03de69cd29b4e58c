import os

# Search backend (the aggregation query service)
SEARCH_API_URL = os.environ.get("SEARCH_API_URL", "http://localhost:8080/api").rstrip("/")
SEARCH_API_TIMEOUT = float(os.environ.get("SEARCH_API_TIMEOUT", "30"))

# Local hours treated as daylight by the day/night chart split: [start, end)
DAY_START_HOUR = int(os.environ.get("DAY_START_HOUR", "6"))
DAY_END_HOUR = int(os.environ.get("DAY_END_HOUR", "20"))

# IANA zone the search backend buckets days in (e.g. "Europe/Berlin")
TIME_ZONE = os.environ.get("TIME_ZONE") or os.environ.get("TZ") or "UTC"

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

CORS_ORIGINS = [o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",") if o.strip()]
