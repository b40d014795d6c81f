"""HTTP constants for the request pipeline.

Centralizes status ranges, defaults and well-known header values.
"""

# HTTP Status Code Ranges
HTTP_STATUS_OK_MIN = 200
HTTP_STATUS_OK_MAX = 300
HTTP_STATUS_BAD_REQUEST = 400
HTTP_STATUS_SERVER_ERROR_MIN = 500
HTTP_STATUS_SERVER_ERROR_MAX = 600

# Retry defaults
DEFAULT_RETRY_DELAY_MS = 1000
DEFAULT_BACKOFF_MULTIPLIER = 2.0

# Built-in adapter name
DEFAULT_ADAPTER = "httpx"

# Multipart upload field name
DEFAULT_FILE_FIELD_NAME = "file"

# Chunk size for streamed uploads with progress reporting
UPLOAD_CHUNK_SIZE = 64 * 1024

# Content types
CONTENT_TYPE_HEADER = "Content-Type"
CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_TEXT = "text/plain"
CONTENT_TYPE_URLENCODED = "application/x-www-form-urlencoded"
