from .rate_limiter import RateLimiter, RateLimitConfig, get_rate_limiter

__all__ = ["RateLimiter", "RateLimitConfig", "get_rate_limiter"]
