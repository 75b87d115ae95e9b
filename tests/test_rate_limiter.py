from tonbridge.services.rate_limiter import RateLimitDecision, RateLimiter


class TestCheckAndAdmit:
    def test_admits_exactly_max_requests_per_window(self, scheduler):
        limiter = RateLimiter(window_seconds=60, max_requests=5, clock=scheduler.now)

        decisions = [limiter.check_and_admit("user-1") for _ in range(5)]
        assert all(d.admitted for d in decisions)

        rejected = limiter.check_and_admit("user-1")
        assert rejected.admitted is False
        assert rejected.retry_after_seconds > 0

    def test_retry_after_is_rounded_up(self, scheduler):
        limiter = RateLimiter(window_seconds=60, max_requests=1, clock=scheduler.now)
        limiter.check_and_admit("user-1")

        scheduler.advance(20.5)
        decision = limiter.check_and_admit("user-1")

        assert decision == RateLimitDecision(admitted=False, retry_after_seconds=40)

    def test_window_resets_after_reset_at(self, scheduler):
        limiter = RateLimiter(window_seconds=60, max_requests=2, clock=scheduler.now)
        limiter.check_and_admit("user-1")
        limiter.check_and_admit("user-1")
        assert limiter.check_and_admit("user-1").admitted is False

        scheduler.advance(60)

        assert limiter.check_and_admit("user-1").admitted is True
        assert limiter.check_and_admit("user-1").admitted is True
        assert limiter.check_and_admit("user-1").admitted is False

    def test_users_are_independent(self, scheduler):
        limiter = RateLimiter(window_seconds=60, max_requests=1, clock=scheduler.now)
        assert limiter.check_and_admit("user-1").admitted is True
        assert limiter.check_and_admit("user-1").admitted is False
        assert limiter.check_and_admit("user-2").admitted is True

    def test_rejections_do_not_extend_window(self, scheduler):
        limiter = RateLimiter(window_seconds=60, max_requests=1, clock=scheduler.now)
        limiter.check_and_admit("user-1")
        for _ in range(10):
            scheduler.advance(5)
            limiter.check_and_admit("user-1")

        scheduler.advance(10)
        assert limiter.check_and_admit("user-1").admitted is True


class TestSweep:
    def test_keeps_windows_within_one_extra_window(self, scheduler):
        limiter = RateLimiter(window_seconds=60, max_requests=5, clock=scheduler.now)
        limiter.check_and_admit("user-1")

        scheduler.advance(100)

        assert limiter.sweep() == 0
        assert limiter.active_count() == 1

    def test_removes_windows_past_one_extra_window(self, scheduler):
        limiter = RateLimiter(window_seconds=60, max_requests=5, clock=scheduler.now)
        limiter.check_and_admit("user-1")
        scheduler.advance(90)
        limiter.check_and_admit("user-2")

        scheduler.advance(30)

        assert limiter.sweep() == 1
        assert limiter.active_count() == 1

    def test_swept_user_starts_fresh(self, scheduler):
        limiter = RateLimiter(window_seconds=60, max_requests=1, clock=scheduler.now)
        limiter.check_and_admit("user-1")
        scheduler.advance(120)
        limiter.sweep()

        assert limiter.check_and_admit("user-1").admitted is True


class TestFormatRejection:
    def test_mentions_limit_and_retry_after(self):
        limiter = RateLimiter(window_seconds=60, max_requests=5)
        text = limiter.format_rejection(RateLimitDecision(admitted=False, retry_after_seconds=42))

        assert "up to 5 questions per minute" in text
        assert "Try again in 42 seconds" in text
