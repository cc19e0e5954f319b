"""
Definition registry for the Entitlements engine.
"""

from types import MappingProxyType
from typing import Iterable, Iterator, List, Mapping, Optional

from shared.errors import UnknownEntitlementError
from shared.logging import get_logger
from .models import EntitlementDefinition


class DefinitionRegistry:
    """Write-once lookup of entitlement definitions by id.

    Populated at construction (last definition wins on a duplicate id) and
    never mutated afterwards, so one instance can be read from any number of
    concurrent evaluations. To change definitions build a new registry.
    """

    def __init__(self, definitions: Iterable[EntitlementDefinition]):
        self.logger = get_logger("entitlements.registry")

        entries = {}
        for definition in definitions:
            if definition.id in entries:
                self.logger.warning("Duplicate entitlement definition replaced", entitlement_id=definition.id)
            entries[definition.id] = definition

        self._definitions: Mapping[str, EntitlementDefinition] = MappingProxyType(entries)
        self.logger.info("Definition registry built", definitions=len(entries))

    def get(self, entitlement_id: str) -> Optional[EntitlementDefinition]:
        """Get a definition by id, or None."""
        return self._definitions.get(entitlement_id)

    def require(self, entitlement_id: str) -> EntitlementDefinition:
        """Get a definition by id or raise UnknownEntitlementError."""
        definition = self._definitions.get(entitlement_id)
        if definition is None:
            raise UnknownEntitlementError(entitlement_id)
        return definition

    def ids(self) -> List[str]:
        """Registered ids in registration order."""
        return list(self._definitions)

    def __contains__(self, entitlement_id: object) -> bool:
        return entitlement_id in self._definitions

    def __iter__(self) -> Iterator[EntitlementDefinition]:
        return iter(self._definitions.values())

    def __len__(self) -> int:
        return len(self._definitions)
