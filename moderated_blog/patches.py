"""
Sparse patches for revisions.

A Patch records which fields changed by the keys it holds: a missing key
means "unchanged", a key mapped to None means "clear the field". Revisions
store ``Patch.as_dict()`` in a JSON column, which keeps the key set intact.
"""


class Patch:
    """Changed fields of an entity, limited to an allowed field set."""

    def __init__(self, values=None, fields=None):
        values = dict(values or {})
        if fields is not None:
            unknown = set(values) - set(fields)
            if unknown:
                raise ValueError(f"Unknown patch fields: {', '.join(sorted(unknown))}")
        self._values = values

    @classmethod
    def from_data(cls, data, fields):
        """Keep only the allowed keys present in ``data``."""
        return cls({name: data[name] for name in fields if name in data}, fields)

    def __contains__(self, name):
        return name in self._values

    def __bool__(self):
        return bool(self._values)

    def __eq__(self, other):
        return isinstance(other, Patch) and self._values == other._values

    def __repr__(self):
        return f"Patch({self._values!r})"

    def get(self, name, default=None):
        return self._values.get(name, default)

    def items(self):
        return self._values.items()

    @property
    def fields(self):
        return list(self._values)

    def only(self, *names):
        """Return a new patch holding only the given fields."""
        return Patch({k: v for k, v in self._values.items() if k in names})

    def without(self, *names):
        return Patch({k: v for k, v in self._values.items() if k not in names})

    def apply_to(self, obj):
        """Copy every present field onto ``obj``; returns the names touched."""
        for name, value in self._values.items():
            setattr(obj, name, value)
        return list(self._values)

    def as_dict(self):
        return dict(self._values)
