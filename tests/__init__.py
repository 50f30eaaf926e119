# kasir end-to-end test suite
#
# This package contains:
# - Live API tests against a running server (pytest + httpx)
# - Stress/load tests (Locust)
#
# Run with: KASIR_LIVE_TESTS=1 pytest tests/
