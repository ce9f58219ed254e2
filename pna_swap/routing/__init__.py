"""Route selection across LPs."""

from .engine import QuoteEngine, QuoteFeed, select_best, apply_same_lp_bias, pick_route

__all__ = ["QuoteEngine", "QuoteFeed", "select_best", "apply_same_lp_bias", "pick_route"]
