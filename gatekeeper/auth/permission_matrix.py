"""
Auth - Permission Matrix Implementation

Table immuable rôle → ressource → permissions, validée au démarrage.
Les recherches échouent fermé: rôle, ressource ou permission inconnus
donnent False sans lever d'exception.
"""

from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Set

from .errors import PermissionMatrixError
from .interfaces import (
    IPermissionMatrix,
    Permission,
    PermissionLike,
    Resource,
    ResourceLike,
    Role,
    RoleLike,
)


_CRUD = ("create", "read", "update", "delete")

DEFAULT_MATRIX: Dict[str, Dict[str, Iterable[str]]] = {
    "admin": {resource.value: _CRUD for resource in Resource},
    "director": {
        "userManagement": (),
        "systemSettings": (),
        "apiCredentials": (),
        "dashboards": _CRUD,
        "crmDashboard": _CRUD,
        "properties": _CRUD,
        "leads": _CRUD,
        "bookings": _CRUD,
        "content": _CRUD,
        "teamMembers": _CRUD,
        "successStories": _CRUD,
    },
    "dataEditor": {
        "userManagement": (),
        "systemSettings": (),
        "apiCredentials": (),
        "dashboards": ("read",),
        "crmDashboard": (),
        "properties": (),
        "leads": (),
        "bookings": (),
        "content": _CRUD,
        "teamMembers": _CRUD,
        "successStories": _CRUD,
    },
    "propertySpecialist": {
        "userManagement": (),
        "systemSettings": (),
        "apiCredentials": (),
        "dashboards": ("read",),
        "crmDashboard": ("read",),
        "properties": _CRUD,
        "leads": ("read",),
        "bookings": ("read",),
        "content": ("read",),
        "teamMembers": ("read",),
        "successStories": ("read",),
    },
    "salesSpecialist": {
        "userManagement": (),
        "systemSettings": (),
        "apiCredentials": (),
        "dashboards": ("read",),
        "crmDashboard": ("read",),
        "properties": ("read",),
        "leads": ("read", "update"),
        "bookings": ("read", "update"),
        "content": (),
        "teamMembers": (),
        "successStories": (),
    },
}


def _coerce(enum_cls, value):
    """Convertit valeur ou nom en membre d'énumération; None si inconnu."""
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value)
        except ValueError:
            return None
    return None


class PermissionMatrix(IPermissionMatrix):
    """
    Matrice de permissions en lecture seule.

    Construite une fois au démarrage; la table interne est un
    MappingProxyType de frozensets, partageable entre requêtes sans verrou.

    Raises (constructeur):
        PermissionMatrixError: rôle, ressource ou permission inconnus, ou
            couple (rôle, ressource) sans entrée explicite

    Example:
        matrix = PermissionMatrix()
        matrix.has_permission(Role.SALES_SPECIALIST, Resource.LEADS, Permission.UPDATE)  # True
    """

    def __init__(self, table: Optional[Mapping[str, Mapping[str, Iterable[str]]]] = None):
        self._table = self._build(table if table is not None else DEFAULT_MATRIX)

    @classmethod
    def from_mapping(cls, table: Mapping[str, Mapping[str, Iterable[str]]]) -> "PermissionMatrix":
        return cls(table)

    @staticmethod
    def _build(table: Mapping[str, Mapping[str, Iterable[str]]]) -> Mapping[Role, Mapping[Resource, FrozenSet[Permission]]]:
        built: Dict[Role, Mapping[Resource, FrozenSet[Permission]]] = {}

        for role_name, resources in table.items():
            role = _coerce(Role, role_name)
            if role is None:
                raise PermissionMatrixError(f"Rôle inconnu dans la matrice: {role_name}")

            row: Dict[Resource, FrozenSet[Permission]] = {}
            for resource_name, permissions in resources.items():
                resource = _coerce(Resource, resource_name)
                if resource is None:
                    raise PermissionMatrixError(f"Ressource inconnue pour {role.value}: {resource_name}")

                granted = set()
                for permission_name in permissions:
                    permission = _coerce(Permission, permission_name)
                    if permission is None:
                        raise PermissionMatrixError(
                            f"Permission inconnue pour {role.value}.{resource.value}: {permission_name}"
                        )
                    granted.add(permission)
                row[resource] = frozenset(granted)

            missing = [r.value for r in Resource if r not in row]
            if missing:
                raise PermissionMatrixError(f"Entrées manquantes pour {role.value}: {', '.join(missing)}")

            built[role] = MappingProxyType(row)

        missing_roles = [r.value for r in Role if r not in built]
        if missing_roles:
            raise PermissionMatrixError(f"Rôles absents de la matrice: {', '.join(missing_roles)}")

        return MappingProxyType(built)

    def permissions(self, role: RoleLike, resource: ResourceLike) -> FrozenSet[Permission]:
        """Permissions accordées; ensemble vide si rôle ou ressource inconnus."""
        role_key = _coerce(Role, role)
        resource_key = _coerce(Resource, resource)
        if role_key is None or resource_key is None:
            return frozenset()
        return self._table.get(role_key, {}).get(resource_key, frozenset())

    def has_permission(self, role: RoleLike, resource: ResourceLike, permission: PermissionLike) -> bool:
        """
        Vérifie une permission.

        Returns:
            True uniquement si la permission figure explicitement dans la table
        """
        permission_key = _coerce(Permission, permission)
        if permission_key is None:
            return False
        return permission_key in self.permissions(role, resource)

    def can_access(self, role: RoleLike, resource: ResourceLike) -> bool:
        """True si au moins une permission est accordée."""
        return len(self.permissions(role, resource)) > 0

    def accessible_resources(self, role: RoleLike) -> Set[Resource]:
        return {resource for resource in Resource if self.can_access(role, resource)}

    def as_dict(self, role: RoleLike) -> Dict[str, list]:
        """Vue sérialisable (ressource → permissions triées) pour l'interface."""
        return {
            resource.value: sorted(p.value for p in self.permissions(role, resource))
            for resource in Resource
        }
