"""Constants for band definition validation and processing."""

# Target alias that binds the first detail band to the driving record itself
DRIVING_ALIAS = "driving"

# Group nesting levels run 0..73
MAX_GROUP_LEVELS = 74

# Page break reasons reported to metrics and diagnostics
BREAK_REASON_OVERFLOW = "overflow"
BREAK_REASON_FORCED = "start_new_page"
BREAK_REASON_COLUMNS = "columns_exhausted"
