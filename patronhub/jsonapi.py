"""
Typed view over JSON:API documents.

Upstream responses are loosely shaped: relationship data may be a single
reference, a list of references, fully embedded resources, or missing.
ResourceGraph normalizes all of these behind a few accessors so parsers
never dig through raw dicts.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable


def pick_string(value: Any) -> str | None:
    """Return a stripped string, or None for non-strings and blanks."""
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def as_list(value: Any) -> list:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


@dataclass(frozen=True)
class ResourceRef:
    type: str
    id: str

    @property
    def key(self) -> str:
        return f"{self.type}:{self.id}"

    @classmethod
    def from_dict(cls, raw: Any) -> "ResourceRef | None":
        if not isinstance(raw, dict):
            return None
        ref_type = pick_string(raw.get("type"))
        ref_id = raw.get("id")
        if isinstance(ref_id, int):
            ref_id = str(ref_id)
        ref_id = pick_string(ref_id)
        if not ref_type or not ref_id:
            return None
        return cls(ref_type, ref_id)


@dataclass
class Resource:
    """A single JSON:API resource object."""
    type: str
    id: str | None
    attributes: dict[str, Any] = field(default_factory=dict)
    relationships: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Any) -> "Resource | None":
        if not isinstance(raw, dict):
            return None
        resource_id = raw.get("id")
        if isinstance(resource_id, int):
            resource_id = str(resource_id)
        attributes = raw.get("attributes")
        relationships = raw.get("relationships")
        return cls(
            type=pick_string(raw.get("type")) or "",
            id=pick_string(resource_id),
            attributes=attributes if isinstance(attributes, dict) else {},
            relationships=relationships if isinstance(relationships, dict) else {},
        )

    @property
    def ref(self) -> ResourceRef | None:
        if not self.type or not self.id:
            return None
        return ResourceRef(self.type, self.id)

    def attr(self, name: str, default: Any = None) -> Any:
        return self.attributes.get(name, default)

    def attr_str(self, *names: str) -> str | None:
        """First non-blank string attribute among names."""
        for name in names:
            value = pick_string(self.attributes.get(name))
            if value:
                return value
        return None

    def attr_nested_str(self, name: str, key: str) -> str | None:
        """String at attributes[name][key], for objects like image_urls."""
        nested = self.attributes.get(name)
        if isinstance(nested, dict):
            return pick_string(nested.get(key))
        return None

    def _relationship_data(self, name: str) -> list:
        relationship = self.relationships.get(name)
        if not isinstance(relationship, dict):
            return []
        return as_list(relationship.get("data"))

    def refs(self, name: str) -> list[ResourceRef]:
        """All well-formed references under a relationship."""
        return [ref for ref in map(ResourceRef.from_dict, self._relationship_data(name)) if ref]

    def first_ref(self, name: str) -> ResourceRef | None:
        refs = self.refs(name)
        return refs[0] if refs else None

    def embedded(self, name: str) -> list["Resource"]:
        """Relationship entries that carry a body instead of being bare references."""
        found = []
        for raw in self._relationship_data(name):
            if isinstance(raw, dict) and ("attributes" in raw or "relationships" in raw):
                resource = Resource.from_dict(raw)
                if resource:
                    found.append(resource)
        return found

    def relationship_names(self) -> list[str]:
        return list(self.relationships)


class ResourceGraph:
    """
    A JSON:API document with its ``included`` side table indexed by ``type:id``.

    Embedded relationship bodies are indexed too, so lookups work the same
    whether the upstream sideloaded a resource or inlined it.
    """

    def __init__(self, document: Any):
        document = document if isinstance(document, dict) else {}
        self.document = document
        self.primary: list[Resource] = [
            r for r in map(Resource.from_dict, as_list(document.get("data"))) if r
        ]
        self.included: list[Resource] = [
            r for r in map(Resource.from_dict, as_list(document.get("included"))) if r
        ]
        self._index: dict[str, Resource] = {}
        for resource in self.included:
            if resource.ref:
                self._index.setdefault(resource.ref.key, resource)
        for resource in self.primary + self.included:
            for name in resource.relationship_names():
                for inner in resource.embedded(name):
                    if inner.ref:
                        self._index.setdefault(inner.ref.key, inner)

    @property
    def root(self) -> Resource | None:
        return self.primary[0] if self.primary else None

    def get(self, ref: ResourceRef | None) -> Resource | None:
        if ref is None:
            return None
        return self._index.get(ref.key)

    def related(self, resource: Resource | None, name: str) -> Resource | None:
        """First resolvable resource under a relationship."""
        if resource is None:
            return None
        for ref in resource.refs(name):
            found = self.get(ref)
            if found:
                return found
        return None

    def related_all(self, resource: Resource, name: str) -> list[Resource]:
        return [found for found in map(self.get, resource.refs(name)) if found]

    def related_many(self, resource: Resource, names: Iterable[str]) -> list[Resource]:
        """Resolvable resources under several relationships, in the order given."""
        found = []
        for name in names:
            found.extend(self.related_all(resource, name))
        return found

    def next_link(self) -> str | None:
        links = self.document.get("links")
        if not isinstance(links, dict):
            return None
        raw = links.get("next")
        if isinstance(raw, str):
            return pick_string(raw)
        if isinstance(raw, dict):
            return pick_string(raw.get("href"))
        return None
