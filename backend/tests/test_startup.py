import json
import os
import subprocess
import sys
from pathlib import Path


BACKEND = Path(__file__).resolve().parents[1]

_SCRIPT = """
import json
from fastapi.testclient import TestClient
from app.main import app

client = TestClient(app)
token = client.get("/api/token")
health = client.get("/health")
print(json.dumps({"token": [token.status_code, token.json()], "health": health.status_code}))
"""


def test_app_imports_and_reports_missing_key_without_openai_credentials(tmp_path):
    env = {key: value for key, value in os.environ.items() if key != "OPENAI_API_KEY"}
    env["PYTHONPATH"] = str(BACKEND)
    env["REPORT_DATA_DIR"] = str(tmp_path / "interviews")

    result = subprocess.run(
        [sys.executable, "-c", _SCRIPT],
        cwd=BACKEND,
        env=env,
        capture_output=True,
        text=True,
        timeout=60,
    )

    assert result.returncode == 0, result.stderr
    payload = json.loads(result.stdout.strip().splitlines()[-1])
    assert payload["token"] == [500, {"error": "Missing OPENAI_API_KEY"}]
    assert payload["health"] == 200
