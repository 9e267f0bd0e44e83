"""Variant selector value object, shared by cart lines and order lines."""

from protean.fields import String

from ordering.domain import ordering


@ordering.value_object
class Variant:
    """A chosen product option, e.g. ``Variant(name="size", value="M")``.

    Two lines refer to the same purchase only when their variants are
    structurally equal; a line without a variant only matches another line
    without one.
    """

    name = String(required=True, max_length=100)
    value = String(required=True, max_length=100)

    def to_label(self) -> str:
        return f"{self.name}: {self.value}"


def variant_from_dict(data) -> Variant | None:
    """Build a Variant from a ``{"name", "value"}`` mapping (or pass through)."""
    if data is None or isinstance(data, Variant):
        return data
    if not data:
        return None
    return Variant(name=data["name"], value=data["value"])
