"""
Canonical Paths
---------------
Converts distinguished-name style locations into readable root-to-leaf paths,
e.g. ``OU=Finance,OU=Corp,DC=CORP,DC=CONTOSO,DC=COM`` becomes
``CORP.CONTOSO.COM\\Corp\\Finance``.
"""

from typing import List

OU_PREFIX = "ou="


def _tokenize(path: str) -> List[str]:
    if not path:
        return []
    return [component.strip() for component in path.split(",")]


def _strip_ou(segment: str) -> str:
    if segment[:len(OU_PREFIX)].lower() == OU_PREFIX:
        return segment[len(OU_PREFIX):]
    return segment


def canonicalize(
    raw_path: str,
    root_suffix: str,
    root_label: str,
    separator: str = "\\"
) -> str:
    """
    Render a distinguished-name path as a readable hierarchical path.

    Args:
        raw_path: Comma separated path, most specific component first
        root_suffix: Trailing domain components to replace, e.g. ``DC=CORP,DC=COM``
        root_label: Label used in place of the suffix, e.g. ``CORP.COM``
        separator: Separator placed between the resulting segments

    Returns:
        The path from root to leaf. When the suffix is not present, the
        remaining transform still applies and the domain components are
        left as they are.
    """
    tokens = _tokenize(raw_path)
    suffix = [component.lower() for component in _tokenize(root_suffix)]

    label_index = None
    if suffix and len(tokens) >= len(suffix):
        tail = [component.lower() for component in tokens[-len(suffix):]]
        if tail == suffix:
            tokens = tokens[:-len(suffix)]
            label_index = len(tokens)
            tokens.append(root_label)

    segments = [
        token if index == label_index else _strip_ou(token)
        for index, token in enumerate(tokens)
    ]
    segments.reverse()
    return separator.join(segments)
