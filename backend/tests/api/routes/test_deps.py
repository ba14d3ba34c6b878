from uuid import uuid4

import pytest

from billing.api.deps import get_current_principal, require_admin
from billing.core.errors import AuthenticationError, AuthorizationError
from billing.models.bill import Principal, Role


class TestPrincipalHeaders:
    """Test cases for reading the principal from upstream headers."""

    def test_valid_headers(self):
        principal_id = uuid4()
        principal = get_current_principal(x_user_id=str(principal_id), x_user_role="Admin")

        assert principal.id == principal_id
        assert principal.role == Role.ADMIN

    @pytest.mark.parametrize(
        "user_id, role",
        [
            (None, "admin"),
            ("00000000-0000-0000-0000-000000000001", None),
            ("not-a-uuid", "admin"),
            ("00000000-0000-0000-0000-000000000001", "superuser"),
        ],
    )
    def test_invalid_headers(self, user_id, role):
        with pytest.raises(AuthenticationError):
            get_current_principal(x_user_id=user_id, x_user_role=role)

    def test_require_admin(self):
        admin = Principal(id=uuid4(), role=Role.ADMIN)
        assert require_admin(admin) is admin

        with pytest.raises(AuthorizationError):
            require_admin(Principal(id=uuid4(), role=Role.CUSTOMER))
