import os

# must be set before anything imports study_processor.core.config
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["OPENAI_API_KEY"] = ""

import pytest  # noqa: E402

from study_processor.core.config import Settings  # noqa: E402
from study_processor.db.base import Base  # noqa: E402
from study_processor.db.session import engine  # noqa: E402

from fakes import RecordingSleep  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def _schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def test_settings():
    return Settings(openai_api_key="sk-test", content_max_chars=10000, mark_failed_on_error=False)


@pytest.fixture
def recording_sleep():
    return RecordingSleep()
