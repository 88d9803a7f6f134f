from monitoring.limiter import HostRateLimiter


def test_slots_are_counted_per_host():
    limiter = HostRateLimiter(max_per_host=2)

    assert limiter.acquire("https://api.example.com/a")
    assert limiter.acquire("https://api.example.com/b")
    assert not limiter.acquire("https://API.example.com:8443/c")
    assert limiter.acquire("https://other.example.com/a")

    assert limiter.active_count("https://api.example.com/") == 2


def test_release_frees_a_slot():
    limiter = HostRateLimiter(max_per_host=1)
    limiter.acquire("https://api.example.com/a")

    limiter.release("https://api.example.com/a")

    assert limiter.active_count("https://api.example.com/a") == 0
    assert limiter.acquire("https://api.example.com/b")


def test_release_without_acquire_is_harmless():
    limiter = HostRateLimiter()

    limiter.release("https://api.example.com/a")

    assert limiter.active_count("https://api.example.com/a") == 0
