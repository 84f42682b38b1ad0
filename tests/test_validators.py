import pytest
from pydantic import ValidationError

from nutriclinic.core.validators import (
    password_problems, validate_ip_address, validate_password,
    validate_profile_username, validate_registration_password,
    validate_time, validate_username
)
from nutriclinic.schemas.admin import AdminCreate, AllowedIP, SecuritySettingsUpdate

class TestStrongPasswordPolicy:

    def test_accepts_strong_password(self):
        assert validate_password("Nutri#Clinic2024")
        assert password_problems("Nutri#Clinic2024") == []

    @pytest.mark.parametrize("password", [
        "Short#1a",              # too short
        "alllowercase#2024",     # no uppercase
        "ALLUPPERCASE#2024",     # no lowercase
        "NoDigitsHere#Ever",     # no digit
        "NoSpecialChar2024",     # no special character
    ])
    def test_rejects_missing_classes(self, password):
        assert not validate_password(password)

    @pytest.mark.parametrize("password", [
        "MyPassword#2024",
        "SuperADMIN#2024x",
        "Secure#Qwerty2024",
        "Letters#Abc20245",
        "Counting#1234567",
        "Zebra#XYZ202409",
    ])
    def test_rejects_banned_fragments_case_insensitive(self, password):
        problems = password_problems(password)
        assert any("common sequences" in problem for problem in problems)

    def test_reports_every_problem(self):
        problems = password_problems("abc")
        assert len(problems) == 5

class TestRegistrationPasswordPolicy:

    @pytest.mark.parametrize("password", ["ana12345!", "Secret#99", "a1@bcdefg"])
    def test_accepts(self, password):
        assert validate_registration_password(password)

    @pytest.mark.parametrize("password", ["short1!", "nodigits!!", "12345678!", "NoSpecial99", "with space1!", "ana12345!\n"])
    def test_rejects(self, password):
        assert not validate_registration_password(password)

class TestIpValidation:

    @pytest.mark.parametrize("value", ["192.168.1.1", "10.0.0.0/8", "0.0.0.0/0", "255.255.255.255/32"])
    def test_accepts(self, value):
        assert validate_ip_address(value)

    @pytest.mark.parametrize("value", [
        "999.1.1.1.1",
        "abc.def.ghi.jkl",
        "256.1.1.1",
        "1.2.3",
        "1.2.3.4/33",
        "1.2.3.4/",
        "10.0.0.1\n",
        "10.0.0.0/8\n",
        "",
    ])
    def test_rejects(self, value):
        assert not validate_ip_address(value)

    def test_allowed_ip_schema(self):
        assert AllowedIP(ip="172.16.0.0/12").ip == "172.16.0.0/12"
        with pytest.raises(ValidationError):
            AllowedIP(ip="300.1.1.1")

class TestUsernamesAndTimes:

    def test_admin_username(self):
        assert validate_username("clinic_admin01")
        assert not validate_username("short")
        assert not validate_username("has-dash-name")
        assert not validate_username("adminuser1\n")

    def test_profile_username(self):
        assert validate_profile_username("ana123")
        assert validate_profile_username("ana.silva_2")
        assert not validate_profile_username("an")
        assert not validate_profile_username("ana silva")
        assert not validate_profile_username("ana123\n")

    @pytest.mark.parametrize("value,expected", [
        ("08:00", True), ("23:59", True), ("24:00", False), ("8:00", False), ("08:60", False), ("09:00\n", False),
    ])
    def test_time(self, value, expected):
        assert validate_time(value) is expected

class TestAdminSchemas:

    def test_admin_create_rejects_weak_password(self):
        with pytest.raises(ValidationError) as exc_info:
            AdminCreate(username="clinic_admin01", password="weakpass")
        assert "at least 12 characters" in str(exc_info.value)

    def test_admin_create_rejects_bad_username(self):
        with pytest.raises(ValidationError):
            AdminCreate(username="bad name", password="Nutri#Clinic2024")

    def test_session_timeout_bounds(self):
        assert SecuritySettingsUpdate(session_timeout=60).session_timeout == 60
        with pytest.raises(ValidationError):
            SecuritySettingsUpdate(session_timeout=1)
