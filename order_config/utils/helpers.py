"""
Utility helpers for the order configuration selector

Ordered-set operations on token tuples. A selection is an ordered tuple
of unique tokens; order is insertion order.
"""


def ordered_unique(tokens):
    """
    Drop duplicate tokens, keeping the first occurrence

    Args:
        tokens (iterable): Tokens in any order

    Returns:
        tuple: Tokens without duplicates, original order preserved

    Examples:
        >>> ordered_unique(['首单', '牛仔', '首单'])
        ('首单', '牛仔')
    """
    seen = set()
    result = []
    for token in tokens:
        if token in seen:
            continue
        seen.add(token)
        result.append(token)
    return tuple(result)


def ordered_union(base, extra):
    """
    Append tokens from extra that are not already in base

    Examples:
        >>> ordered_union(('翻单',), ['需要面料测试'])
        ('翻单', '需要面料测试')
    """
    return ordered_unique(list(base) + list(extra))


def ordered_difference(base, removed):
    """
    Tokens of base not present in removed, order preserved

    Examples:
        >>> ordered_difference(('首单', '需要打板', '牛仔'), {'需要打板'})
        ('首单', '牛仔')
    """
    removed = set(removed)
    return tuple(token for token in base if token not in removed)
