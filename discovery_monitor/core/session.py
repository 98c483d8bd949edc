from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional

from discovery_monitor.errors import InvalidRequestError
from discovery_monitor.models.events import EntityCategory


@dataclass
class SessionContext:
    """
    Entity ids a caller has selected as defaults for later operations
    (the "current discoverer", "current application", ...). Owned and passed
    around by the caller; there is no process-wide selection.
    """
    _selected: Dict[EntityCategory, str] = field(default_factory=dict)

    def select(self, category: EntityCategory, entity_id: Optional[str]) -> None:
        if entity_id:
            self._selected[category] = entity_id
        else:
            self._selected.pop(category, None)

    def clear(self, category: Optional[EntityCategory] = None) -> None:
        if category is None:
            self._selected.clear()
        else:
            self._selected.pop(category, None)

    def selected(self, category: EntityCategory) -> Optional[str]:
        return self._selected.get(category)

    def resolve(self, category: EntityCategory, explicit: Optional[str] = None) -> str:
        """
        An explicit id wins and drops the stored selection for that category;
        otherwise fall back to the selection.
        """
        if explicit:
            self._selected.pop(category, None)
            return explicit
        current = self._selected.get(category)
        if current:
            return current
        raise InvalidRequestError(
            f"no {category.value} id given and none selected",
            context={"category": category.value},
        )
