from .schedule import Frequency, nth_occurrence, occurrences_until, parse_frequency, is_month_based

__all__ = ["Frequency", "nth_occurrence", "occurrences_until", "parse_frequency", "is_month_based"]
