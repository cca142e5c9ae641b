import base64
import os
import pathlib
import sys
import tempfile

import pytest


BACKEND_ROOT = pathlib.Path(__file__).resolve().parents[1]
sys.path.append(str(BACKEND_ROOT))


def pytest_configure():
    # Point the event store at a throwaway SQLite file before finsync is
    # imported; finsync.models_sqlalchemy builds its engine at import time.
    if os.getenv("FINSYNC_TEST_DATABASE_URL"):
        os.environ["DATABASE_URL"] = os.environ["FINSYNC_TEST_DATABASE_URL"]
        return
    temp_dir = tempfile.mkdtemp(prefix="finsync-tests-")
    db_path = pathlib.Path(temp_dir) / "pytest.db"
    os.environ["DATABASE_URL"] = f"sqlite:///{db_path}"


@pytest.fixture(scope="session")
def sqlite_engine():
    from finsync.models_sqlalchemy import Base, engine
    from finsync.models_sqlalchemy import models  # noqa: F401

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session(sqlite_engine):
    from finsync.models_sqlalchemy import Base, SessionLocal

    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        for table in reversed(Base.metadata.sorted_tables):
            session.execute(table.delete())
        session.commit()
        session.close()


@pytest.fixture(scope="session")
def rsa_private_key():
    from cryptography.hazmat.primitives.asymmetric import rsa

    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture()
def public_key_handle(rsa_private_key):
    from finsync.services.starling_signature import PublicKeyHandle

    return PublicKeyHandle.from_key(rsa_private_key.public_key())


@pytest.fixture()
def sign(rsa_private_key):
    """Return a helper producing Starling-style base64 RSA-SHA512 signatures."""
    from cryptography.hazmat.primitives import hashes
    from cryptography.hazmat.primitives.asymmetric import padding

    def _sign(body: bytes) -> str:
        signature = rsa_private_key.sign(body, padding.PKCS1v15(), hashes.SHA512())
        return base64.b64encode(signature).decode("ascii")

    return _sign
