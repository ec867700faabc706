"""
Constants and configuration values for the headlines digest service.
"""

# Selection
DEFAULT_DIGEST_LIMIT = 5

# Store Keys
PREFERENCES_KEY_PREFIX = "prefs"
SEEN_KEY_PREFIX = "seen"
SEEN_HISTORY_MAX_IDS = 0  # 0 = unbounded

# Session
SESSION_HEADER = "X-Session-ID"
SESSION_COOKIE = "sid"
SESSION_COOKIE_MAX_AGE = 60 * 60 * 24 * 30  # 30 days

# Summaries
SUMMARY_CONTENT_CHARS = 500  # Content prefix sent to the summarizer
SUMMARY_FALLBACK_TEMPLATE = "Summary: {title} - A {tags} story from {region}."

# Port Timeouts
INFERENCE_TIMEOUT_SECONDS = 20.0
SUMMARY_TIMEOUT_SECONDS = 20.0

# LLM Configuration
GROQ_CHAT_URL = "https://api.groq.com/openai/v1/chat/completions"
LLM_TAGGER_MODEL = "llama-3.1-8b-instant"
LLM_SUMMARY_MODEL = "llama-3.1-8b-instant"
LLM_TEMPERATURE = 0.3
LLM_TAGGER_MAX_TOKENS = 150
LLM_SUMMARY_MAX_TOKENS = 150
LLM_MAX_RETRIES = 3

# Groq HTTP client
LLM_BACKOFF_MIN = 1.0
LLM_BACKOFF_MAX = 8.0
LLM_RETRY_AFTER_MAX = 15.0  # Longer waits would outlive the per-item timeouts
LLM_HTTP_CONNECT_TIMEOUT = 10.0
LLM_HTTP_READ_TIMEOUT = 30.0
LLM_HTTP_WRITE_TIMEOUT = 10.0
LLM_HTTP_POOL_TIMEOUT = 5.0
LLM_HTTP_USER_AGENT = "headlines-digest/0.1"
LLM_MAX_REQUESTS_PER_SECOND = 5  # Fan-out summaries share this budget
