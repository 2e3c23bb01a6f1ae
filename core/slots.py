"""Slot allocation for per-vehicle images.

Auto-allocation reads the occupied slots and then writes, so two concurrent
requests for the same vehicle can pick the same slot; the (vehicle_id,
sort_order) upsert makes the later write win. This is accepted behaviour.
"""

from __future__ import annotations

from collections.abc import Iterable

from core.errors import CapacityExceededError, ImageValidationError


def next_free_slot(occupied: Iterable[int], max_slots: int) -> int | None:
    """Return the lowest slot in ``[0, max_slots)`` not in ``occupied``.

    ``None`` means every slot is taken.
    """
    used = set(occupied)
    for slot in range(max_slots):
        if slot not in used:
            return slot
    return None


def parse_sort_order(raw: object) -> int | None:
    """Coerce a client-supplied sortOrder to an int.

    Empty values mean "not supplied". Integral numbers and numeric strings are
    accepted; anything else is a validation error. The range is checked by
    ``resolve_slot``.
    """
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise ImageValidationError("sortOrder must be an integer", field="sortOrder")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        if raw.is_integer():
            return int(raw)
        raise ImageValidationError("sortOrder must be an integer", field="sortOrder")
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            raise ImageValidationError(
                "sortOrder must be an integer", field="sortOrder"
            ) from None
    raise ImageValidationError("sortOrder must be an integer", field="sortOrder")


def resolve_slot(requested: int | None, occupied: Iterable[int], max_slots: int) -> int:
    if requested is not None:
        if not 0 <= requested < max_slots:
            raise ImageValidationError(
                f"sortOrder must be >= 0 and < {max_slots}", field="sortOrder"
            )
        return requested

    slot = next_free_slot(occupied, max_slots)
    if slot is None:
        raise CapacityExceededError(f"Max {max_slots} images")
    return slot
