import shutil
from pathlib import Path

import pytest

from solana_stories.knowledge import KnowledgeBase
from solana_stories.storage import ConversationStore

TEST_DATA_DIR = Path("data-tests")
PRESETS_DIR = Path(__file__).parent / "presets"


@pytest.fixture(autouse=True)
def clean_test_data():
    """Wipe data-tests/ before every test."""
    if TEST_DATA_DIR.exists():
        shutil.rmtree(TEST_DATA_DIR)
    TEST_DATA_DIR.mkdir()
    yield
    # leave data-tests around after tests for inspection; CI can ignore it


@pytest.fixture
def store() -> ConversationStore:
    return ConversationStore(TEST_DATA_DIR)


@pytest.fixture
def knowledge_dir(tmp_path) -> Path:
    """A copy of the shipped knowledge assets that a test may break."""
    target = tmp_path / "knowledge"
    shutil.copytree(PRESETS_DIR / "knowledge", target)
    return target


@pytest.fixture
def knowledge(knowledge_dir) -> KnowledgeBase:
    kb = KnowledgeBase(knowledge_dir)
    kb.initialize()
    return kb


class StubStoryClient:
    """Story client returning canned replies and recording every call.

    `reply` is returned by generate(); `fragments` are yielded by
    generate_stream(). Set `error` to make both raise it instead.
    """

    def __init__(self, reply="Once upon a time...", fragments=None, error=None):
        self.reply = reply
        self.fragments = list(fragments) if fragments is not None else ["Once", " upon", " a time"]
        self.error = error
        self.calls = []  # list of (user_message, history) tuples

    async def generate(self, user_message, history):
        self.calls.append((user_message, list(history)))
        if self.error:
            raise self.error
        return self.reply

    async def generate_stream(self, user_message, history):
        self.calls.append((user_message, list(history)))
        if self.error:
            raise self.error
        for fragment in self.fragments:
            yield fragment


@pytest.fixture
def stub_client() -> StubStoryClient:
    return StubStoryClient()
