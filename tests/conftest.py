# kasir live API suite - shared configuration and fixtures
#
# End-to-end checks against a real server process over HTTP:
# - Starts the Flask backend on an ephemeral SQLite file (SEED_ON_STARTUP)
# - Authenticated httpx client helpers
# - Failure message formatting
#
# Opt in with KASIR_LIVE_TESTS=1 (pytest tests/). Point TEST_EXTERNAL_SERVER
# at an already running server to skip process management.

import os
import sys
import time
import shutil
import tempfile
import subprocess
from pathlib import Path
from dataclasses import dataclass
from typing import Generator, Optional, Dict, Any

import pytest
import httpx

REPO_ROOT = Path(__file__).parent.parent
BACKEND_DIR = REPO_ROOT / "backend"


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class LiveConfig:
    """Live test configuration with environment variable overrides."""
    backend_base_url: str = os.environ.get("TEST_BACKEND_URL", "http://127.0.0.1:5001")
    request_timeout: float = float(os.environ.get("TEST_REQUEST_TIMEOUT", "30"))
    server_startup_timeout: float = float(os.environ.get("TEST_SERVER_STARTUP_TIMEOUT", "30"))

    admin_username: str = "admin_live"
    cashier_username: str = "kasir_live"
    password: str = "LivePass123"


# =============================================================================
# FAILURE MESSAGE HELPER
# =============================================================================

class LiveFailure(Exception):
    """
    Failure with a human-readable breakdown:
    scenario, expected, actual, and the HTTP response if there was one.
    """

    def __init__(
        self,
        scenario: str,
        expected: str,
        actual: str,
        response: Optional[httpx.Response] = None,
        extra_context: Optional[Dict[str, Any]] = None
    ):
        lines = [
            "",
            "=" * 80,
            f"SCENARIO: {scenario}",
            f"EXPECTED: {expected}",
            f"ACTUAL: {actual}",
        ]
        if response is not None:
            lines.extend([
                "-" * 80,
                f"HTTP STATUS: {response.status_code}",
                f"RESPONSE BODY: {response.text[:1000]}",
            ])
        for key, value in (extra_context or {}).items():
            lines.append(f"  {key}: {value}")
        lines.append("=" * 80)
        super().__init__("\n".join(lines))


def assert_response(response: httpx.Response, expected_status: int, scenario: str):
    """Assert HTTP status; raises LiveFailure with the response body otherwise."""
    if response.status_code != expected_status:
        raise LiveFailure(
            scenario=scenario,
            expected=f"HTTP {expected_status}",
            actual=f"HTTP {response.status_code}",
            response=response,
        )


# =============================================================================
# HTTP CLIENT WITH AUTH HELPERS
# =============================================================================

class APIClient:
    """httpx client wrapper that remembers the bearer token."""

    def __init__(self, base_url: str, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.client = httpx.Client(timeout=timeout)
        self.token: Optional[str] = None
        self.current_user: Optional[Dict] = None

    def _headers(self) -> Dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def get(self, path: str, params: Optional[Dict] = None) -> httpx.Response:
        return self.client.get(f"{self.base_url}{path}", headers=self._headers(), params=params)

    def post(self, path: str, json: Optional[Any] = None) -> httpx.Response:
        return self.client.post(f"{self.base_url}{path}", headers=self._headers(), json=json)

    def delete(self, path: str) -> httpx.Response:
        return self.client.delete(f"{self.base_url}{path}", headers=self._headers())

    def login(self, username: str, password: str) -> bool:
        response = self.post("/api/auth/login", json={"username": username, "password": password})
        if response.status_code == 200:
            data = response.json()
            self.token = data.get("token")
            self.current_user = data.get("user")
            return True
        return False

    def close(self):
        self.client.close()


# =============================================================================
# SERVER MANAGEMENT
# =============================================================================

class ServerManager:
    """Runs `flask run` against a throwaway database seeded on startup."""

    def __init__(self, config: LiveConfig):
        self.config = config
        self.process: Optional[subprocess.Popen] = None
        self.temp_dir: Optional[str] = None

    def start(self) -> bool:
        self.temp_dir = tempfile.mkdtemp(prefix="kasir_live_")
        db_file = Path(self.temp_dir) / "kasir_live.sqlite3"
        port = self.config.backend_base_url.rsplit(":", 1)[-1]

        env = os.environ.copy()
        env.update({
            "DATABASE_URL": f"sqlite:///{db_file}",
            "SEED_ON_STARTUP": "true",
            "SEED_ADMIN_USERNAME": self.config.admin_username,
            "SEED_ADMIN_PASSWORD": self.config.password,
            "SEED_CASHIER_USERNAME": self.config.cashier_username,
            "SEED_CASHIER_PASSWORD": self.config.password,
        })

        self.process = subprocess.Popen(
            [sys.executable, "-m", "flask", "--app", "wsgi", "run", "--port", port],
            cwd=str(BACKEND_DIR),
            env=env,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        return self._wait_for_server()

    def _wait_for_server(self) -> bool:
        deadline = time.time() + self.config.server_startup_timeout
        while time.time() < deadline:
            try:
                response = httpx.get(f"{self.config.backend_base_url}/api/health", timeout=2.0)
                if response.status_code in (200, 503):
                    return True
            except (httpx.ConnectError, httpx.TimeoutException):
                pass
            time.sleep(0.5)
        return False

    def stop(self):
        if self.process:
            self.process.terminate()
            try:
                self.process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self.process.kill()
            self.process = None

        if self.temp_dir:
            shutil.rmtree(self.temp_dir, ignore_errors=True)


# =============================================================================
# PYTEST FIXTURES
# =============================================================================

def pytest_collection_modifyitems(config, items):
    if os.environ.get("KASIR_LIVE_TESTS") == "1":
        return
    skip_live = pytest.mark.skip(reason="live server tests: set KASIR_LIVE_TESTS=1")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


@pytest.fixture(scope="session")
def live_config() -> LiveConfig:
    return LiveConfig()


@pytest.fixture(scope="session")
def server_manager(live_config: LiveConfig) -> Generator[ServerManager, None, None]:
    """Server is started once per test session."""
    manager = ServerManager(live_config)

    if os.environ.get("TEST_EXTERNAL_SERVER"):
        yield manager
        return

    if not manager.start():
        manager.stop()
        pytest.fail("Failed to start test server")
    yield manager
    manager.stop()


@pytest.fixture
def api_client(live_config: LiveConfig, server_manager: ServerManager) -> Generator[APIClient, None, None]:
    client = APIClient(live_config.backend_base_url, timeout=live_config.request_timeout)
    yield client
    client.close()


@pytest.fixture
def admin_client(api_client: APIClient, live_config: LiveConfig) -> APIClient:
    if not api_client.login(live_config.admin_username, live_config.password):
        pytest.fail(f"Failed to login as {live_config.admin_username}")
    return api_client


@pytest.fixture
def cashier_client(api_client: APIClient, live_config: LiveConfig) -> APIClient:
    if not api_client.login(live_config.cashier_username, live_config.password):
        pytest.fail(f"Failed to login as {live_config.cashier_username}")
    return api_client
