"""
Pytest fixtures for the Hesabgar backend tests.

Provides the application (testing config: SQLite in-memory document store,
memory local slots), a database session, session credentials for a test user,
an in-memory document store fake and a stub generation provider.
"""

import itertools

import pytest
from flask_jwt_extended import create_access_token

from app import create_app, db
from app.services.document_store import DocumentStore
from app.services.errors import RemoteSyncError
from app.services.generation_service import GenerationGateway, GenerationProvider
from app.models import WriteKind

TEST_USER_ID = 'user-test-1'
OTHER_USER_ID = 'user-test-2'


@pytest.fixture(scope='function')
def app():
    """Create application for testing."""
    app = create_app('testing')
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()
    app.extensions['data_services'].shutdown()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Application context with an empty document table."""
    with app.app_context():
        yield db.session
        db.session.rollback()


def _auth_headers(app, user_id, email):
    with app.app_context():
        token = create_access_token(identity=user_id, additional_claims={'email': email})
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def auth_headers(app):
    """Session credentials for the test user."""
    return _auth_headers(app, TEST_USER_ID, 'owner@example.com')


@pytest.fixture(scope='function')
def other_auth_headers(app):
    """Session credentials for a second user."""
    return _auth_headers(app, OTHER_USER_ID, 'other@example.com')


@pytest.fixture
def sequential_ids():
    """Deterministic id generator: prod-000000001, prod-000000002..."""
    counter = itertools.count(1)
    return lambda name: f"{name[:4]}-{next(counter):09d}"


# =============================================================================
# FAKES
# =============================================================================


class MemoryDocumentStore(DocumentStore):
    """
    Document store kept in a dict, with failure injection.

    fail_on: set of operation kinds ('list', 'set', 'merge', 'delete', 'commit')
    that raise RemoteSyncError.
    """

    def __init__(self):
        self.documents = {}
        self.commits = []
        self.fail_on = set()

    def _collection(self, user_id, collection):
        return self.documents.setdefault(user_id, {}).setdefault(collection, {})

    def list_documents(self, user_id, collection):
        if 'list' in self.fail_on:
            raise RemoteSyncError('store offline', operation='list', collection=collection)
        return [{'id': doc_id, **data} for doc_id, data in self._collection(user_id, collection).items()]

    def get_document(self, user_id, collection, doc_id):
        data = self._collection(user_id, collection).get(doc_id)
        return {'id': doc_id, **data} if data is not None else None

    def commit(self, user_id, operations):
        for op in operations:
            if 'commit' in self.fail_on or op.kind.value in self.fail_on:
                raise RemoteSyncError('store offline', operation=op.kind.value,
                                      collection=op.collection, doc_id=op.doc_id)
        for op in operations:
            docs = self._collection(user_id, op.collection)
            if op.kind is WriteKind.DELETE:
                docs.pop(op.doc_id, None)
            elif op.kind is WriteKind.MERGE:
                docs[op.doc_id] = {**docs.get(op.doc_id, {}), **op.data}
            else:
                docs[op.doc_id] = dict(op.data)
        self.commits.append(list(operations))


class StubProvider(GenerationProvider):
    """Generation provider returning canned answers and recording prompts."""

    def __init__(self, json_response=None, image=None, error=None, image_error=None):
        self.json_response = json_response if json_response is not None else {}
        self.image = image
        self.error = error
        self.image_error = image_error
        self.prompts = []
        self.media = []

    def generate_json(self, prompt, media=None):
        self.prompts.append(prompt)
        self.media.append(media)
        if self.error:
            raise self.error
        return self.json_response

    def generate_image(self, prompt):
        self.prompts.append(prompt)
        if self.image_error:
            raise self.image_error
        return self.image


@pytest.fixture
def memory_store():
    return MemoryDocumentStore()


@pytest.fixture
def stub_provider():
    return StubProvider()


@pytest.fixture
def install_provider(app):
    """Replace the application's generation gateway with a stub provider."""
    def install(provider):
        app.extensions['generation_gateway'] = GenerationGateway(
            provider, placeholder_logo_url=app.config['PLACEHOLDER_LOGO_URL']
        )
        return provider
    return install

