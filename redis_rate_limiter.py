"""Redis-backed rate limiter."""
import hashlib
import logging
import time
from typing import Optional, Tuple
import redis
import redis.asyncio as aioredis
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from errors import error_response
from monitoring import rate_limit_exceeded_counter, suspicious_activity_counter

logger = logging.getLogger(__name__)


class RedisRateLimiter(BaseHTTPMiddleware):
    """
    Rate limiter using Redis for distributed rate limiting.

    Implements dual-tier sliding window rate limiting:
    - Per IP: Higher limit - handles shared IPs
    - Per access token: Lower limit - prevents individual abuse

    Requests are let through when Redis is unavailable.
    """

    def __init__(
        self,
        app,
        redis_client: aioredis.Redis,
        requests_per_minute_ip: int = 1000,
        requests_per_minute_user: int = 300,
        window_seconds: int = 60
    ):
        """
        Initialize Redis-backed rate limiter.

        Args:
            app: FastAPI application
            redis_client: Async Redis connection
            requests_per_minute_ip: Max requests per IP per window
            requests_per_minute_user: Max requests per access token per window
            window_seconds: Sliding window size in seconds
        """
        super().__init__(app)
        self.redis = redis_client
        self.requests_per_minute_ip = requests_per_minute_ip
        self.requests_per_minute_user = requests_per_minute_user
        self.window_seconds = window_seconds

    async def _check_rate_limit(
        self,
        key: str,
        limit: int,
        window: int
    ) -> Tuple[bool, int]:
        """
        Check rate limit using Redis sorted set (sliding window).

        Algorithm:
        1. Remove timestamps older than window
        2. Count requests in window
        3. Add current request
        4. Set TTL

        Args:
            key: Redis key for this limit (e.g., "rate:ip:192.168.1.1")
            limit: Maximum requests allowed
            window: Time window in seconds

        Returns:
            Tuple of (is_allowed, current_count)
        """
        try:
            current_time = time.time()
            window_start = current_time - window

            pipe = self.redis.pipeline()
            pipe.zremrangebyscore(key, 0, window_start)
            pipe.zcard(key)
            pipe.zadd(key, {str(current_time): current_time})
            pipe.expire(key, window + 1)
            results = await pipe.execute()

            # Count BEFORE adding current request
            count = results[1]

            return count < limit, count + 1

        except redis.RedisError as e:
            logger.error(f"Redis rate limit error: {e}")
            return True, 0

    @staticmethod
    def _client_key(request: Request) -> Tuple[str, Optional[str]]:
        """Client IP and a digest of the bearer token, if any."""
        client_ip = request.client.host if request.client else "unknown"
        if "x-forwarded-for" in request.headers:
            client_ip = request.headers["x-forwarded-for"].split(",")[0].strip()

        token_key = None
        auth_header = request.headers.get("authorization")
        if auth_header and auth_header.startswith("Bearer "):
            token = auth_header.split(" ", 1)[1]
            token_key = hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]

        return client_ip, token_key

    def _reject(self, limit: int, limit_type: str):
        return error_response(
            429,
            f"Rate limit exceeded for {limit_type}. Maximum {limit} requests per minute.",
            headers={"Retry-After": str(self.window_seconds)}
        )

    async def dispatch(self, request: Request, call_next):
        """
        Process request with Redis-backed dual-tier rate limiting.

        Returns:
            Response or 429 if rate limited
        """
        client_ip, token_key = self._client_key(request)

        # --- IP-based rate limiting ---
        ip_allowed, ip_count = await self._check_rate_limit(
            f"rate:ip:{client_ip}",
            self.requests_per_minute_ip,
            self.window_seconds
        )

        if not ip_allowed:
            rate_limit_exceeded_counter.add(1, {"limit_type": "ip"})
            logger.warning("IP rate limit exceeded", extra={
                "client_ip": client_ip,
                "endpoint": request.url.path,
                "requests_in_window": ip_count,
                "limit": self.requests_per_minute_ip
            })
            return self._reject(self.requests_per_minute_ip, "IP")

        # --- Token-based rate limiting ---
        if token_key:
            user_allowed, user_count = await self._check_rate_limit(
                f"rate:user:{token_key}",
                self.requests_per_minute_user,
                self.window_seconds
            )

            if not user_allowed:
                rate_limit_exceeded_counter.add(1, {"limit_type": "user"})
                logger.warning("User rate limit exceeded", extra={
                    "client_ip": client_ip,
                    "endpoint": request.url.path,
                    "requests_in_window": user_count,
                    "limit": self.requests_per_minute_user
                })
                return self._reject(self.requests_per_minute_user, "user")

        response = await call_next(request)

        await self._detect_suspicious_activity(request, response.status_code, client_ip)

        return response

    async def _detect_suspicious_activity(self, request: Request, status_code: int, client_ip: str):
        """
        Detect suspicious activity patterns using Redis.

        Patterns:
        - Credential stuffing: 5+ failed auths in 5 minutes
        - Endpoint scanning: 10+ 404s in 5 minutes
        - Abuse: 20+ 4xx errors in 5 minutes
        """
        patterns = []
        if status_code == 401:
            patterns.append(("401", "credential_stuffing", 5))
        if status_code == 404:
            patterns.append(("404", "endpoint_scanning", 10))
        if 400 <= status_code < 500:
            patterns.append(("4xx", "abuse", 20))

        try:
            current_time = time.time()
            window = 300

            for bucket, activity_type, threshold in patterns:
                key = f"suspicious:{bucket}:{client_ip}"
                await self.redis.zadd(key, {str(current_time): current_time})
                await self.redis.expire(key, window + 1)

                count = await self.redis.zcount(key, current_time - window, current_time)
                if count >= threshold:
                    suspicious_activity_counter.add(1, {"type": activity_type})
                    logger.warning("Suspicious activity detected", extra={
                        "type": activity_type,
                        "client_ip": client_ip,
                        "endpoint": request.url.path,
                        "count": count
                    })

        except redis.RedisError as e:
            logger.error(f"Error detecting suspicious activity: {e}")
