import os
import sys
import tempfile
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# File logs from test runs stay out of the working tree
os.environ.setdefault("ROOMCHAT_LOG_DIR", str(Path(tempfile.gettempdir()) / "roomchat-test-logs"))


@pytest.fixture
def fast_config():
    from client.config import ClientConfig

    # 1, 2, 4, 8, 16 ms
    return ClientConfig(host="chat.test", port=8080, base_delay_ms=1)


@pytest.fixture
def connector():
    from support import FakeConnector

    return FakeConnector()
