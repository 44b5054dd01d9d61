from __future__ import annotations

MAX_WARNING_HEADER_LENGTH = 2048


def dedupe_preserve_order(items: list[str]) -> list[str]:
    seen: set[str] = set()
    deduped: list[str] = []

    for item in items:
        if item in seen:
            continue
        seen.add(item)
        deduped.append(item)

    return deduped


def compat_warning_headers(header_name: str, warnings: list[str]) -> dict[str, str]:
    """Join compat warnings into one response header, truncated to fit."""
    if not warnings:
        return {}

    value = " | ".join(dedupe_preserve_order(warnings))
    if len(value) > MAX_WARNING_HEADER_LENGTH:
        value = value[: MAX_WARNING_HEADER_LENGTH - 3] + "..."
    return {header_name: value}
