import base64

import pytest

from idealab_core.storage import load_backends


@pytest.fixture
def backends(tmp_path):
    b = load_backends({
        "local_path": str(tmp_path / "local.json"),
        "blob_dir": str(tmp_path / "blob"),
        "local_quota_bytes": None,
    })
    yield b
    b.close()


def data_url(payload: bytes, mime="image/png") -> str:
    return f"data:{mime};base64,{base64.b64encode(payload).decode('ascii')}"
