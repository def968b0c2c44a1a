"""Sheet-to-sheet import with a regenerated stuck-up validation dashboard.

This package contains:
- the aggregation core (dates, aggregate, rollups, layout), free of any I/O
- the Google Sheets side (sheets, dashboard, workflow)
- the polling scheduler and the HTTP server
"""

__version__ = "0.1.0"
