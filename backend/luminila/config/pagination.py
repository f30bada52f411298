from typing import Mapping, Tuple

DEFAULT_LIMIT = 50
MAX_LIMIT = 200


def normalize_pagination(limit_raw, offset_raw) -> Tuple[int, int]:
    """Clamp limit to 1..MAX_LIMIT and offset to >= 0. ValueError on non-integers."""
    try:
        limit = DEFAULT_LIMIT if limit_raw in (None, '') else int(limit_raw)
        offset = 0 if offset_raw in (None, '') else int(offset_raw)
    except (TypeError, ValueError):
        raise ValueError('limit/offset must be int')
    return max(1, min(limit, MAX_LIMIT)), max(0, offset)


def pagination_from_args(args: Mapping[str, str]) -> Tuple[int, int]:
    return normalize_pagination(args.get('limit'), args.get('offset'))
