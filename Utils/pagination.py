import math


def paginate(queryset, page: int, limit: int):
    """Slice a queryset and return (documents, pagination block)."""
    total = queryset.count()
    total_pages = math.ceil(total / limit) if limit else 0
    docs = list(queryset.skip((page - 1) * limit).limit(limit))
    return docs, {
        'page': page,
        'limit': limit,
        'total': total,
        'total_pages': total_pages,
        'has_next': page < total_pages,
        'has_prev': page > 1,
    }
