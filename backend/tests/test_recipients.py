from app.models.user import User
from app.services.recipients import extract_intake_code, matches_target_years, resolve_recipient_emails


def test_extract_intake_code():
    assert extract_intake_code("jane.24b@uni.edu") == 24
    assert extract_intake_code("raj.23BCS1042@uni.edu") == 23
    assert extract_intake_code("staff@uni.edu") is None
    assert extract_intake_code("jane.2b@uni.edu") is None
    assert extract_intake_code(None) is None


def test_matches_target_years():
    assert matches_target_years("staff@uni.edu", None)
    assert matches_target_years("jane.24b@uni.edu", [24, 25])
    assert not matches_target_years("jane.23b@uni.edu", [24])
    assert not matches_target_years("staff@uni.edu", [24])


def test_resolve_recipient_emails_filters_inactive_and_untargeted(db_session):
    db_session.add_all(
        [
            User(name="A", email="amy.24b@uni.edu", hashed_password="x"),
            User(name="B", email="ben.23b@uni.edu", hashed_password="x"),
            User(name="C", email="cara.24c@uni.edu", hashed_password="x", is_active=False),
            User(name="D", email="dean@uni.edu", hashed_password="x"),
        ]
    )
    db_session.commit()

    assert resolve_recipient_emails(db_session, None) == ["amy.24b@uni.edu", "ben.23b@uni.edu", "dean@uni.edu"]
    assert resolve_recipient_emails(db_session, [24]) == ["amy.24b@uni.edu"]
