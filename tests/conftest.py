import copy

import pytest

from abacx.core.model import Permission, Policy, Role

SAMPLE_DOC = {
    "roles": [
        {"id": 1, "name": "admin", "label": "Administrator", "index": 100, "is_super_admin": True},
        {
            "id": 2,
            "name": "user",
            "label": "User",
            "is_default": True,
            "permissions": ["session:list"],
        },
        {
            "id": 3,
            "name": "editor",
            "label": "Editor",
            "index": 10,
            "permissions": ["user:list", "user:read"],
        },
    ],
    "policies": [
        {
            "id": 1,
            "effect": "allow",
            "permission": "user:update",
            "role_id": 2,
            "condition": {"op": "eq", "left": {"type": "user_attr", "key": "id"}, "right": {"type": "resource_attr", "key": "id"}},
            "description": "users may update their own profile",
        },
        {"id": 2, "effect": "allow", "permission": "user:delete", "role_id": 3},
        {
            "id": 3,
            "effect": "deny",
            "permission": "user:delete",
            "role_id": 3,
            "condition": {"op": "eq", "left": {"user_attr": "id"}, "right": {"resource_attr": "id"}},
            "description": "editors cannot delete themselves",
        },
    ],
    "user_roles": [
        {"user_id": "alice", "role_id": 1},
        {"user_id": "bob", "role_id": 3},
    ],
}


class SpyStore:
    """Policy store stub recording every fetch."""

    def __init__(self, policies=(), fail=None):
        self.policies = list(policies)
        self.fail = fail
        self.calls = []

    async def load_policies(self, role_id, permission):
        self.calls.append((role_id, permission))
        if self.fail is not None:
            raise self.fail
        return [p for p in self.policies if p.role_id == role_id and p.permission is permission]


@pytest.fixture
def sample_doc():
    return copy.deepcopy(SAMPLE_DOC)


@pytest.fixture
def user_role():
    return Role(id=2, name="user", is_default=True)


@pytest.fixture
def admin_role():
    return Role(id=1, name="admin", is_super_admin=True)


def make_policy(id, effect, permission, role_id, condition=None):
    return Policy.from_mapping(
        {
            "id": id,
            "effect": effect,
            "permission": Permission(permission).value,
            "role_id": role_id,
            "condition": condition,
        }
    )


@pytest.fixture
def spy_store():
    return SpyStore


@pytest.fixture
def policy():
    return make_policy
