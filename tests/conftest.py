"""
Shared fixtures: an in-memory database per test, the ASGI app behind an
httpx client, a fake n8n workflow and a recording mailer.
"""
import os

# Must be set before the app (and its settings) are imported
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["N8N_ROADMAP_WEBHOOK_URL"] = "http://n8n.local/webhook/roadmap"
os.environ["N8N_WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["BACKEND_URL"] = "http://api.local"
os.environ["SMTP_USER"] = "team@example.com"

import copy

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import get_db, init_db
from app.main import app
from app.services.mailer import Mailer, MailDeliveryError, get_mailer
from app.services.roadmap_generator import RoadmapGeneratorClient, get_roadmap_generator

WEBHOOK_SECRET = "test-webhook-secret"

ROADMAP_JSON = {
    "id": "data-science-beginner",
    "title": "Data Science Career Path",
    "field": "Data Science",
    "level": "Beginner",
    "overview": {
        "description": "From spreadsheets to models",
        "duration": "6 months",
        "difficulty": 2,
        "outcomes": ["Analyse data with pandas"],
    },
    "phases": [
        {
            "id": "phase-1",
            "title": "Foundations",
            "description": "Python and statistics",
            "duration": "6 weeks",
            "order": 1,
            "color": "#2563EB",
            "steps": [
                {
                    "id": "step-1",
                    "title": "Python basics",
                    "description": "Syntax, types and control flow",
                    "type": "course",
                    "duration": "2 weeks",
                    "order": 1,
                    "difficulty": 1,
                    "skills": ["python"],
                    "resources": [
                        {"title": "Python tutorial", "type": "tutorial", "url": "https://docs.python.org/3/tutorial/"}
                    ],
                },
                {
                    "id": "step-2",
                    "title": "Statistics",
                    "description": "Descriptive statistics",
                    "type": "reading",
                    "duration": "2 weeks",
                    "order": 2,
                    "difficulty": 2,
                },
            ],
        },
        {
            "id": "phase-2",
            "title": "Analysis",
            "description": "Working with real data",
            "duration": "8 weeks",
            "order": 2,
            "steps": [
                {
                    "id": "step-3",
                    "title": "pandas",
                    "description": "DataFrames",
                    "type": "project",
                    "duration": "4 weeks",
                    "order": 1,
                    "difficulty": 3,
                    "projects": [
                        {"title": "Sales report", "description": "Clean and chart a dataset",
                         "difficulty": 3, "estimatedHours": 12}
                    ],
                },
            ],
        },
    ],
    "connections": [{"from": "phase-1", "to": "phase-2", "type": "prerequisite"}],
    "metadata": {"aiModel": "gpt-4o", "version": "1.0", "tags": ["data"]},
}


def sample_roadmap_json():
    return copy.deepcopy(ROADMAP_JSON)


class FakeWorkflow:
    """Stands in for the n8n webhook through httpx.MockTransport"""

    def __init__(self):
        self.requests = []
        self.status_code = 200
        self.body = {"workflowId": "wf-123"}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.body)

    def client(self) -> RoadmapGeneratorClient:
        return RoadmapGeneratorClient(transport=httpx.MockTransport(self.handler))


class RecordingMailer(Mailer):
    def __init__(self):
        super().__init__()
        self.sent = []
        self.fail = False

    async def send(self, to, subject, html_body, reply_to=None):
        if self.fail:
            raise MailDeliveryError("SMTP unavailable")
        self.sent.append({"to": to, "subject": subject, "html": html_body, "reply_to": reply_to})


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_db(bind=engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def workflow():
    return FakeWorkflow()


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
async def client(session_factory, workflow, mailer):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_roadmap_generator] = workflow.client
    app.dependency_overrides[get_mailer] = lambda: mailer

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
def register(client):
    """Register an account and return (auth headers, user dict)"""
    async def _register(email="ada@example.com", name="Ada Lovelace", password="secret123",
                        field="computer-science"):
        response = await client.post("/api/auth/register", json={
            "name": name, "email": email, "password": password, "field": field,
        })
        assert response.status_code == 201, response.text
        data = response.json()["data"]
        return {"Authorization": f"Bearer {data['token']}"}, data["user"]

    return _register


@pytest.fixture
async def auth_headers(register):
    headers, _ = await register()
    return headers


@pytest.fixture
def callback(client):
    """Post a workflow callback with the shared secret"""
    async def _callback(payload, secret=WEBHOOK_SECRET):
        return await client.post(
            "/api/roadmaps/webhook/n8n-callback",
            json=payload,
            headers={"Authorization": f"Bearer {secret}"},
        )

    return _callback


@pytest.fixture
def generate(client, workflow):
    """Generate a roadmap; with complete=True the workflow answers synchronously"""
    async def _generate(headers, field="Data Science", level="Beginner", complete=True):
        if complete:
            workflow.body = {
                "workflowId": "wf-sync",
                "data": {"roadmap_json": sample_roadmap_json(), "roadmap_doc": "# Data Science"},
            }
        else:
            workflow.body = {"workflowId": "wf-123"}
        response = await client.post("/api/roadmaps/generate", json={"field": field, "level": level},
                                     headers=headers)
        assert response.status_code == 202, response.text
        return response.json()["data"]["roadmap"]["roadmap_json"]["id"]

    return _generate
