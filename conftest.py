import io
import json

import httpx
import pytest
from PIL import Image

from sumo_shorts.jobs import JobManager
from sumo_shorts.kv_storage import KVStorage


def png_bytes(size=(8, 16), mode="RGB", color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new(mode, size, color).save(buf, format="PNG")
    return buf.getvalue()


class FakeRedis:
    """Answers KV REST command arrays from an in-memory dict."""

    def __init__(self):
        self.data = {}
        self.commands = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        cmd = json.loads(request.content)
        self.commands.append(cmd)
        op = cmd[0].upper()
        if op == "SET":
            self.data[cmd[1]] = cmd[2]
            return httpx.Response(200, json={"result": "OK"})
        if op == "GET":
            return httpx.Response(200, json={"result": self.data.get(cmd[1])})
        if op == "DEL":
            return httpx.Response(200, json={"result": int(self.data.pop(cmd[1], None) is not None)})
        if op == "KEYS":
            prefix = cmd[1].rstrip("*")
            return httpx.Response(200, json={"result": [k for k in self.data if k.startswith(prefix)]})
        return httpx.Response(400, json={"error": f"unknown command {op}"})

    def storage(self) -> KVStorage:
        return KVStorage(url="https://kv.example", token="t", transport=httpx.MockTransport(self.handler))


@pytest.fixture
def file_jobs(tmp_path):
    return JobManager(kv=KVStorage(url="", token=""), jobs_dir=str(tmp_path / "jobs"))


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def reference_png(tmp_path):
    path = tmp_path / "reference.png"
    path.write_bytes(png_bytes())
    return str(path)
