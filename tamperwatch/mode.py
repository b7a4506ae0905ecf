"""
Comparison settings.

A ComparisonMode is handed to every normalization, diff and equality call,
so concurrent comparisons never share mutable configuration.
"""

from dataclasses import dataclass, replace


@dataclass(frozen=True)
class ComparisonMode:
    ignore_comments: bool = True         # drop comments and processing instructions
    ignore_text_cdata: bool = True       # CDATA sections compare as plain text
    ignore_whitespace: bool = True       # trim text, drop whitespace-only text
    ignore_attribute_order: bool = True  # no ATTR_SEQUENCE differences
    compare_unmatched: bool = True       # pair leftover children instead of reporting them missing

    def copy(self, **overrides) -> "ComparisonMode":
        return replace(self, **overrides)


DEFAULT_MODE = ComparisonMode()
