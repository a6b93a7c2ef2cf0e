"""
Tests de l'assemblage des composants.
"""

import pytest
import yaml

from gatekeeper.auth import DEFAULT_MATRIX, PermissionMatrixError, Role
from gatekeeper.core import AuthSettings, ConfigIntegrityError
from gatekeeper.logging import StructuredLogger
from gatekeeper.notify import OutboxNotifier, RetryingNotifier
from gatekeeper.service import AuthComponents, build_components


def _logger():
    return StructuredLogger("gatekeeper.service", output_handler=None)


def _matrix_file(tmp_path, table):
    path = tmp_path / "matrix.yaml"
    path.write_text(yaml.safe_dump({"roles": table}))
    return str(path)


def _table():
    return {role: {res: [str(p) for p in perms] for res, perms in row.items()} for role, row in DEFAULT_MATRIX.items()}


class TestBuildComponents:
    def test_defaults(self):
        components = build_components(logger=_logger())

        assert isinstance(components, AuthComponents)
        assert isinstance(components.notifier, OutboxNotifier)
        assert components.permissions.has_permission(Role.ADMIN, "leads", "delete") is True

    def test_components_share_audit_trail(self):
        components = build_components(logger=_logger())

        assert components.login._audit is components.audit
        assert components.sessions._audit is components.audit
        assert isinstance(components.otp._notifier, RetryingNotifier)

    def test_ready_logged(self):
        logger = _logger()
        build_components(AuthSettings(otp_required_roles=["admin"]), logger=logger)

        entry = logger.get_entries()[-1]
        assert entry.message == "auth components ready"
        assert entry.extra["second_factor_roles"] == ["admin"]

    def test_matrix_from_file(self, tmp_path):
        table = _table()
        table["dataEditor"]["leads"] = ["read"]
        settings = AuthSettings(permission_matrix_path=_matrix_file(tmp_path, table))

        components = build_components(settings, logger=_logger())

        assert components.permissions.has_permission(Role.DATA_EDITOR, "leads", "read") is True

    def test_incomplete_matrix_refused(self, tmp_path):
        table = _table()
        del table["director"]["bookings"]
        settings = AuthSettings(permission_matrix_path=_matrix_file(tmp_path, table))

        with pytest.raises(PermissionMatrixError):
            build_components(settings, logger=_logger())

    def test_missing_matrix_file(self, tmp_path):
        settings = AuthSettings(permission_matrix_path=str(tmp_path / "absent.yaml"))

        with pytest.raises(ConfigIntegrityError):
            build_components(settings, logger=_logger())
