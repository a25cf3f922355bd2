"""Table engine constants shared by every list screen."""

# Paging
TABLE_DEFAULT_PAGE_SIZE = 20
TABLE_PAGE_SIZE_OPTIONS = (10, 20, 50, 100, 500)

# Page size that turns local pagination off (upstream already paginates)
MAX_SAFE_INTEGER = 2**53 - 1

# Suggested debounce for keyword inputs, in milliseconds
TABLE_KEYWORD_DEBOUNCE_MS = 300

# Column layout persistence
TABLE_COLUMN_PERSIST_PREFIX = "table-columns"
COLUMN_STATE_VERSION = 1
MIN_COL_WIDTH = 80

# Full-dataset pulls from paginated fetchers
EXPORT_FETCH_PAGE_SIZE = 500
EXPORT_MAX_ROWS = 20_000
EXPORT_MAX_PAGES = 200
