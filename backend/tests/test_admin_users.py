from conftest import auth_headers, register_user


def test_super_admin_manages_roles(client, super_admin_token):
    user = register_user(client, name="Ops", email="ops@uni.edu")

    response = client.patch(
        f"/api/admin/users/{user['id']}/role",
        json={"role": "student_admin"},
        headers=auth_headers(super_admin_token),
    )
    assert response.status_code == 200
    assert response.json()["role"] == "student_admin"

    listed = client.get("/api/admin/users?role=student_admin", headers=auth_headers(super_admin_token))
    assert listed.status_code == 200
    assert [item["email"] for item in listed.json()] == ["ops@uni.edu"]


def test_super_admin_cannot_change_own_role(client, super_admin_token):
    me = client.get("/api/auth/me", headers=auth_headers(super_admin_token)).json()
    response = client.patch(
        f"/api/admin/users/{me['id']}/role",
        json={"role": "student"},
        headers=auth_headers(super_admin_token),
    )
    assert response.status_code == 400


def test_role_changes_need_super_admin(client, make_user):
    admin_token = make_user("ops@uni.edu", role="admin")
    target = register_user(client, name="Amy", email="amy.24b@uni.edu")

    response = client.patch(
        f"/api/admin/users/{target['id']}/role",
        json={"role": "admin"},
        headers=auth_headers(admin_token),
    )
    assert response.status_code == 403

    missing = client.patch(
        "/api/admin/users/does-not-exist/role",
        json={"role": "admin"},
        headers=auth_headers(make_user("lead@uni.edu", role="super_admin")),
    )
    assert missing.status_code == 404
