"""
Schema and result types shared by the client and the object manager.

Remote objects are kept as the JSON dictionaries returned by the Assets API;
only the object type schema and the sentinel outcomes get their own types.
"""

from enum import Enum
from typing import Any, Dict, Iterator, List, Optional


LABEL_PROPERTY = 'Label'


class Outcome(Enum):
    """Sentinel results returned instead of raising at operation boundaries.

    Every member is falsy, so ``if result:`` separates a real object from
    any kind of miss or failure.
    """

    NOT_FOUND = 'not_found'
    AMBIGUOUS = 'ambiguous'
    NO_CHANGE_NEEDED = 'no_change_needed'
    FAILURE = 'failure'

    def __bool__(self) -> bool:
        return False


class LabelLookup:
    """Tagged result of looking up an object by label and type."""

    def __init__(self, status: Optional[Outcome] = None, obj: Optional[Dict[str, Any]] = None):
        self.status = status
        self.object = obj

    @classmethod
    def found(cls, obj: Dict[str, Any]) -> 'LabelLookup':
        return cls(obj=obj)

    @property
    def is_found(self) -> bool:
        return self.object is not None

    def __repr__(self) -> str:
        if self.is_found:
            return f"LabelLookup(found id={self.object.get('id')})"
        return f"LabelLookup({self.status.name})"


class AttributeDefinition:
    """One attribute of an object type schema."""

    def __init__(self, id: int, name: str, is_label: bool = False,
                 reference_object_type_id: Optional[int] = None):
        self.id = id
        self.name = name
        self.is_label = is_label
        self.reference_object_type_id = reference_object_type_id

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'AttributeDefinition':
        """Build a definition from an ``objecttype/{id}/attributes`` entry."""
        reference_type_id = data.get('referenceObjectTypeId')
        if reference_type_id is None and isinstance(data.get('referenceObjectType'), dict):
            reference_type_id = data['referenceObjectType'].get('id')

        return cls(
            id=int(data['id']),
            name=data['name'],
            is_label=bool(data.get('label', data.get('isLabel', False))),
            reference_object_type_id=int(reference_type_id) if reference_type_id is not None else None,
        )

    @property
    def is_reference(self) -> bool:
        return self.reference_object_type_id is not None

    def __repr__(self) -> str:
        return (f"AttributeDefinition(id={self.id}, name={self.name!r}, is_label={self.is_label}, "
                f"reference_object_type_id={self.reference_object_type_id})")


class ObjectTypeSchema:
    """Ordered attribute definitions for a single object type."""

    def __init__(self, object_type_id: int, attributes: List[AttributeDefinition]):
        self.object_type_id = object_type_id
        self.attributes = list(attributes)

    @classmethod
    def from_api(cls, object_type_id: int, data: List[Dict[str, Any]]) -> 'ObjectTypeSchema':
        return cls(object_type_id, [AttributeDefinition.from_api(item) for item in data])

    def __iter__(self) -> Iterator[AttributeDefinition]:
        return iter(self.attributes)

    def __len__(self) -> int:
        return len(self.attributes)

    def __bool__(self) -> bool:
        # A schema is a hit even when it has no attributes
        return True

    @property
    def label_attribute(self) -> Optional[AttributeDefinition]:
        for attribute in self.attributes:
            if attribute.is_label:
                return attribute
        return None

    @property
    def names(self) -> List[str]:
        return [attribute.name for attribute in self.attributes]

    def resolve(self, property_name: str) -> Optional[AttributeDefinition]:
        """
        Map a caller supplied property name to a schema attribute.

        ``Label`` always means the label attribute, whatever its real name.
        Every other name must match exactly (case-sensitive).

        Args:
            property_name: Name used in the desired object

        Returns:
            The matching definition, or None if the schema has no such attribute
        """
        if property_name == LABEL_PROPERTY:
            return self.label_attribute

        for attribute in self.attributes:
            if attribute.name == property_name:
                return attribute
        return None

    def has_property(self, property_name: str) -> bool:
        return self.resolve(property_name) is not None

    def __repr__(self) -> str:
        return f"ObjectTypeSchema(object_type_id={self.object_type_id}, attributes={len(self.attributes)})"


def object_type_id_of(obj: Dict[str, Any]) -> Optional[int]:
    """Read the object type ID from either API representation of an object."""
    object_type = obj.get('objectType')
    if isinstance(object_type, dict) and object_type.get('id') is not None:
        return int(object_type['id'])
    if obj.get('objectTypeId') is not None:
        return int(obj['objectTypeId'])
    return None
