from app.core.config import Settings


def test_list_settings_accept_comma_separated_and_json():
    settings = Settings(
        allowed_email_domains="@Uni.edu, staff.uni.edu",
        bootstrap_super_admin_emails='["Root@Uni.edu"]',
        cors_origins="https://announce.uni.edu",
    )
    assert settings.allowed_email_domains == ["uni.edu", "staff.uni.edu"]
    assert settings.bootstrap_super_admin_emails == ["root@uni.edu"]
    assert settings.cors_origins == ["https://announce.uni.edu"]


def test_scheduling_defaults_and_flags():
    settings = Settings(environment=" Development ", smtp_host="smtp.uni.edu", smtp_from_email="a@uni.edu")
    assert settings.schedule_slot_minutes == 5
    assert settings.schedule_max_search_slots == 180
    assert settings.schedule_lock_conflict_rows is True
    assert settings.is_development
    assert settings.smtp_configured
