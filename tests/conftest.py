import sys
from pathlib import Path
import pytest

# Ensure project root is on sys.path so tests can import the `gridday` package
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def reset_shared_state():
	# rate limiter, leaderboard cache and dependency overrides are process-global
	import gridday.main as app_main
	from gridday.cache import get_cache
	app_main._RATE_LIMIT_STORE.clear()
	get_cache().clear()
	yield
	app_main.app.dependency_overrides.clear()
