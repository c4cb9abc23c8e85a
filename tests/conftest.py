import pytest

from lms_app import create_app, db
from lms_app.models import User, Classroom, Enrollment
from werkzeug.security import generate_password_hash

PASSWORD = "secret123"


@pytest.fixture()
def app(tmp_path, monkeypatch):
    uri_path = str(tmp_path / "test.db").replace("\\", "/")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{uri_path}")
    monkeypatch.setenv("UPLOAD_ROOT", str(tmp_path / "uploads"))
    monkeypatch.setenv("CSRF_ENABLED", "false")
    monkeypatch.setenv("RATELIMIT_ENABLED", "false")
    monkeypatch.setenv("CACHE_TYPE", "NullCache")
    monkeypatch.delenv("REDIS_URL", raising=False)
    monkeypatch.delenv("MAIL_HOST", raising=False)
    app = create_app()
    app.config["TESTING"] = True
    yield app
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture(autouse=True)
def patch_cache_app(app):
    from lms_app import cache
    cache.app = app
    yield


@pytest.fixture()
def make_user(app):
    def _make(name, email, role="student", password=PASSWORD, is_active=True):
        with app.app_context():
            u = User(
                name=name,
                email=email,
                role=role,
                password_hash=generate_password_hash(password),
                is_active=is_active,
            )
            db.session.add(u)
            db.session.commit()
            return u.user_id
    return _make


@pytest.fixture()
def professor(make_user):
    return make_user("Ada Lovelace", "ada@example.com", "professor")


@pytest.fixture()
def student(make_user):
    return make_user("Sam Carter", "sam@example.com", "student")


@pytest.fixture()
def admin(make_user):
    return make_user("Root Admin", "admin@example.com", "admin")


@pytest.fixture()
def classroom(app, professor, student):
    """A public class owned by ``professor`` with ``student`` enrolled."""
    with app.app_context():
        c = Classroom(name="Algorithms", code="CS201", professor_id_fk=professor)
        db.session.add(c)
        db.session.flush()
        db.session.add(Enrollment(student_id_fk=student, class_id_fk=c.class_id))
        db.session.commit()
        return c.class_id


@pytest.fixture()
def login(client):
    def _login(email, password=PASSWORD):
        resp = client.post("/login", data={"email": email, "password": password})
        assert resp.status_code == 302, resp.data
        return resp
    return _login
