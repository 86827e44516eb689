"""Utility functions for orgnote."""


def slugify_title(text: str) -> str:
    """Turn a node title into a lowercase file-name slug.

    Examples:
        "Architecture Plan: Index Sync" -> "architecture-plan-index-sync"
        "C++ / Rust notes" -> "c-rust-notes"
        "" -> ""

    Args:
        text: The title to convert.

    Returns:
        Slug made of alphanumerics, hyphens and underscores.
    """
    if not text:
        return ""

    # Separators become word breaks
    result = (
        text.replace(":", " ").replace(";", " ").replace("/", " ").replace("\\", " ")
    )

    words = []
    for word in result.split():
        cleaned = "".join(c if c.isalnum() or c in "-_" else "" for c in word)
        if cleaned:
            words.append(cleaned.lower())

    return "-".join(words)


def escape_like_pattern(value: str) -> str:
    """Escape SQL LIKE wildcards to treat them as literals.

    Args:
        value: User input string that may contain LIKE wildcards

    Returns:
        String with '%', '_', and '\\' escaped for safe use in LIKE clauses

    Example:
        >>> escape_like_pattern("100% done")
        '100\\% done'
    """
    escape_table = str.maketrans(
        {
            "\\": "\\\\",  # Escape backslash first
            "%": "\\%",
            "_": "\\_",
        }
    )
    return value.translate(escape_table)
