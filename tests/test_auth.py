"""
Registration, login (JSON and OAuth2 form), /users/me, role guards and health checks.
These run real bcrypt hashing, so keep the user count small.
"""


class TestRegisterAndLogin:
    def test_register_then_login(self, client):
        registered = client.post(
            "/api/v1/auth/register",
            json={"email": "new@test.com", "password": "secret123", "username": "小明"},
        )
        assert registered.status_code == 201
        body = registered.json()
        assert body["role"] == "student"
        assert "password_hash" not in body

        login = client.post("/api/v1/auth/login", json={"email": "new@test.com", "password": "secret123"})
        assert login.status_code == 200
        token = login.json()["access_token"]
        assert login.json()["token_type"] == "bearer"

        me = client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {token}"})
        assert me.json()["email"] == "new@test.com"

    def test_register_teacher(self, client):
        response = client.post(
            "/api/v1/auth/register",
            json={"email": "prof@test.com", "password": "secret123", "username": "王老师", "role": "teacher"},
        )
        assert response.json()["role"] == "teacher"

    def test_duplicate_email(self, client, test_student):
        response = client.post(
            "/api/v1/auth/register",
            json={"email": test_student.email, "password": "secret123", "username": "dup"},
        )
        assert response.status_code == 400

    def test_email_is_case_insensitive(self, client):
        client.post(
            "/api/v1/auth/register",
            json={"email": "Mixed.Case@Test.com", "password": "secret123", "username": "x"},
        )

        login = client.post("/api/v1/auth/login", json={"email": "mixed.case@test.com", "password": "secret123"})
        duplicate = client.post(
            "/api/v1/auth/register",
            json={"email": "MIXED.CASE@test.com", "password": "secret123", "username": "y"},
        )

        assert login.status_code == 200
        assert duplicate.status_code == 400

    def test_short_password_rejected(self, client):
        response = client.post(
            "/api/v1/auth/register",
            json={"email": "short@test.com", "password": "123", "username": "x"},
        )
        assert response.status_code == 422

    def test_wrong_password(self, client):
        client.post(
            "/api/v1/auth/register",
            json={"email": "wrong@test.com", "password": "secret123", "username": "x"},
        )

        response = client.post("/api/v1/auth/login", json={"email": "wrong@test.com", "password": "nope"})

        assert response.status_code == 401

    def test_form_token_uses_email_as_username(self, client):
        client.post(
            "/api/v1/auth/register",
            json={"email": "form@test.com", "password": "secret123", "username": "x"},
        )

        response = client.post(
            "/api/v1/auth/token", data={"username": "form@test.com", "password": "secret123"}
        )

        assert response.status_code == 200
        assert response.json()["access_token"]


class TestCurrentUser:
    def test_invalid_token(self, client):
        response = client.get("/api/v1/users/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_update_profile(self, client, student_headers):
        response = client.put(
            "/api/v1/users/me", json={"username": "新名字", "avatar_url": "https://cdn/a.png"}, headers=student_headers
        )

        assert response.status_code == 200
        assert response.json()["username"] == "新名字"
        assert response.json()["avatar_url"] == "https://cdn/a.png"

    def test_student_blocked_from_teacher_route(self, client, student_headers):
        response = client.get("/api/v1/classrooms/teacher", headers=student_headers)
        assert response.status_code == 403

    def test_teacher_blocked_from_student_route(self, client, teacher_headers):
        response = client.get("/api/v1/assignments/student", headers=teacher_headers)
        assert response.status_code == 403


class TestHealth:
    def test_live(self, client):
        assert client.get("/api/v1/health/live").json() == {"status": "ok"}

    def test_db(self, client):
        assert client.get("/api/v1/health/db").status_code == 200

    def test_config_hides_secrets(self, client):
        body = client.get("/api/v1/health/config").json()
        assert set(body) == {"mathpix", "deepseek", "storage", "strict_provider_failures"}
        assert all(isinstance(v, bool) for v in body.values())
