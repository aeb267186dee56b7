"""
Skincare Routine Platform
Blueprint helpers shared by the API modules.
"""

from flask import request


def json_body() -> dict:
    """Request JSON object, or an empty dict for a missing / non-object body."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def paginate_items(items: list, default_limit=500, max_limit=2000):
    """Apply limit/offset pagination to an already-loaded list.

    Query params:
        limit  — max items (default 500, clamped to [0, max_limit])
        offset — starting position (default 0)

    Returns:
        (page_items, total_count)
    """
    total = len(items)
    try:
        limit = max(min(int(request.args.get("limit", default_limit)), max_limit), 0)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return items[offset:offset + limit], total
