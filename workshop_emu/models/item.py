"""
The item entity and its lifecycle states.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from workshop_emu.models.result import FailureKind


class ItemState(Enum):
    """Lifecycle of a workshop item inside the registry."""

    NONE = "none"
    SUBSCRIBED = "subscribed"
    INSTALLING = "installing"
    INSTALLED = "installed"

    @property
    def host_flags(self) -> int:
        """State bitmask in the host platform's encoding."""
        return HOST_STATE_FLAGS.get(self, 0)


# Platform item-state bits: 4 = installed, 16 = downloading
HOST_STATE_FLAGS = {
    ItemState.INSTALLED: 4,
    ItemState.INSTALLING: 16,
}


def item_path(items_path: Path, item_id: int) -> Path:
    """Returns the install directory of an item under the items root."""
    return Path(items_path) / str(item_id)


@dataclass
class Item:
    """A single workshop item known to the registry."""

    id: int
    state: ItemState
    path: Path
    last_failure: FailureKind | None = field(default=None, repr=False)

    @classmethod
    def create(
        cls, items_path: Path, item_id: int, state: ItemState = ItemState.NONE
    ) -> "Item":
        """Builds an item whose path is derived from the items root."""
        return cls(id=item_id, state=state, path=item_path(items_path, item_id))

    @property
    def archive(self) -> Path:
        return self.path.with_name(f"{self.id}.zip")
