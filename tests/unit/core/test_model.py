import dataclasses

import pytest

from abacx.core.condition import Comparison
from abacx.core.errors import AbacxError, ConfigurationError, StorageUnavailable, Unauthenticated
from abacx.core.model import Check, Decision, Permission, Policy, Role, Subject, as_check, role_names


def test_permission_parse_and_str():
    assert Permission.parse("user:update") is Permission.USER_UPDATE
    assert Permission.parse(Permission.ROLE_LIST) is Permission.ROLE_LIST
    assert str(Permission.CRON_TASK_TRIGGER) == "cronTask:trigger"
    assert Permission.USER_READ == "user:read"
    with pytest.raises(ConfigurationError):
        Permission.parse("user:fly")
    with pytest.raises(ConfigurationError):
        Permission.parse(None)


def test_role_from_mapping_accepts_camel_case_columns():
    role = Role.from_mapping({"id": "3", "name": "ops", "isDefault": 1, "isSuperAdmin": 0, "index": None})
    assert role.id == 3 and role.is_default is True and role.is_super_admin is False
    assert role.index == 0
    assert role.permissions == frozenset()

    role = Role.from_mapping({"id": 4, "name": "x", "permissions": ["user:list", "user:read"]})
    assert role.permissions == {Permission.USER_LIST, Permission.USER_READ}


def test_role_from_mapping_rejects_unknown_grant():
    with pytest.raises(ConfigurationError):
        Role.from_mapping({"id": 1, "name": "x", "permissions": ["nope"]})


def test_policy_from_mapping_parses_condition_once():
    p = Policy.from_mapping(
        {
            "id": 1,
            "effect": "allow",
            "permission": "user:update",
            "roleId": 2,
            "condition": '{"op": "eq", "left": {"user_attr": "id"}, "right": {"resource_attr": "id"}}',
        }
    )
    assert p.role_id == 2
    assert p.permission is Permission.USER_UPDATE
    assert isinstance(p.condition, Comparison)


@pytest.mark.parametrize(
    "row",
    [
        {"id": 1, "effect": "permit", "permission": "user:read", "role_id": 1},
        {"id": 1, "effect": "allow", "permission": "user:fly", "role_id": 1},
        {"id": 1, "effect": "allow", "permission": "user:read"},
        {"id": 1, "effect": "allow", "permission": "user:read", "role_id": 1, "condition": {"op": "?"}},
    ],
)
def test_policy_from_mapping_rejects_bad_rows(row):
    with pytest.raises(ConfigurationError):
        Policy.from_mapping(row)


@pytest.mark.parametrize(
    "row",
    [
        {"name": "x"},
        {"id": 1},
        {"id": None, "name": "x"},
        {"id": "one", "name": "x"},
        {"id": 1, "name": ""},
        ["id", "name"],
    ],
)
def test_role_from_mapping_rejects_missing_or_bad_fields(row):
    with pytest.raises(ConfigurationError):
        Role.from_mapping(row)


def test_policy_from_mapping_rejects_missing_or_bad_id():
    with pytest.raises(ConfigurationError, match="missing 'id'"):
        Policy.from_mapping({"effect": "allow", "permission": "user:read", "role_id": 1})
    with pytest.raises(ConfigurationError):
        Policy.from_mapping({"id": [1], "effect": "allow", "permission": "user:read", "role_id": 1})
    with pytest.raises(ConfigurationError):
        Policy.from_mapping({"id": 1, "effect": "allow", "permission": "user:read", "roleId": "two"})


def test_subject_attribute_bag():
    s = Subject(id="u1", roles=[Role(id=2, name="user")], attrs={"dept": "eng", "id": "spoofed"})
    bag = s.attributes()
    assert bag == {"dept": "eng", "id": "u1", "roles": ["user"]}
    assert role_names(s.roles) == ["user"]


def test_models_are_frozen():
    with pytest.raises(dataclasses.FrozenInstanceError):
        Role(id=1, name="a").name = "b"  # type: ignore[misc]
    with pytest.raises(dataclasses.FrozenInstanceError):
        Decision(allowed=True, effect="allow", reason="x").allowed = False  # type: ignore[misc]


def test_decision_truthiness():
    assert Decision(allowed=True, effect="allow", reason="policy_allow")
    assert not Decision(allowed=False, effect="deny", reason="no_matching_policy")


def test_as_check():
    c = Check("user:read", {"id": "x"})
    assert as_check(c) is c
    assert as_check({"permission": "user:read"}) == Check("user:read", None)


def test_error_hierarchy():
    for cls in (Unauthenticated, ConfigurationError, StorageUnavailable):
        assert issubclass(cls, AbacxError)
