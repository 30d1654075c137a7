"""
Object Manager

This module provides the write side of the client: creating and updating
objects from desired objects written with human readable property names,
resolving reference attributes by label, and optionally creating stub
objects for references that do not exist yet.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from .attribute_diff import as_value_list, build_attribute_entry, diff_attribute
from .config import DEFAULT_MAX_REFERENCE_DEPTH
from .jira_assets_client import JiraAssetsClient
from .models import (
    LABEL_PROPERTY,
    AttributeDefinition,
    ObjectTypeSchema,
    Outcome,
    object_type_id_of,
)


# Never copied from the outer object onto a stub reference object
STUB_EXCLUDED_PROPERTIES = frozenset([LABEL_PROPERTY, 'Description', 'Notes'])

StubChain = Tuple[Tuple[int, str], ...]


def is_empty_value(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set)):
        return not any(not is_empty_value(item) for item in value)
    return False


class ObjectManager:
    """Create, update and delete objects described by property names."""

    def __init__(self, client: JiraAssetsClient, max_reference_depth: int = DEFAULT_MAX_REFERENCE_DEPTH,
                 logger: Optional[logging.Logger] = None):
        """Initialize the Object Manager.

        Args:
            client: Assets API client used for schema lookups, reads and writes
            max_reference_depth: How many levels of stub references may be created
            logger: Optional logger, defaults to ``jira_objects.object_manager``
        """
        self.client = client
        self.max_reference_depth = max_reference_depth
        self.logger = logger or logging.getLogger('jira_objects.object_manager')

    def create(self, object_type_id: int, desired: Dict[str, Any],
               create_references: bool = False) -> Union[Dict[str, Any], Outcome]:
        """
        Create a new object from a desired object.

        Properties the schema does not know are skipped. Reference values that
        cannot be resolved are dropped unless ``create_references`` is set, in
        which case a stub object is created for them.

        Args:
            object_type_id: The object type ID to create the object in
            desired: Mapping of property name to value or list of values
            create_references: Create missing referenced objects

        Returns:
            Created object information, or ``Outcome.FAILURE``
        """
        return self._create(object_type_id, desired, create_references, depth=0, chain=())

    def _create(self, object_type_id: int, desired: Dict[str, Any], create_references: bool,
                depth: int, chain: StubChain,
                schema: Optional[ObjectTypeSchema] = None) -> Union[Dict[str, Any], Outcome]:
        if schema is None:
            schema = self.client.get_schema(object_type_id)
        if not schema:
            self.logger.error(f"Cannot create object: no schema for object type {object_type_id}")
            return Outcome.FAILURE

        attributes = []
        seen_ids = set()
        for property_name, value in desired.items():
            if is_empty_value(value):
                continue

            attribute = self._resolve_attribute(schema, property_name)
            if attribute is None or self._is_duplicate(attribute, property_name, seen_ids):
                continue

            values = [item for item in as_value_list(value) if not is_empty_value(item)]
            if attribute.is_reference:
                values = self._resolve_references(attribute, values, desired, create_references, depth, chain)

            attributes.append(build_attribute_entry(attribute.id, values))

        return self.client.submit_create(object_type_id, attributes)

    def update(self, reference_object: Dict[str, Any], desired: Dict[str, Any],
               create_references: bool = False) -> Union[Dict[str, Any], Outcome]:
        """
        Update an existing object so that it matches a desired object.

        Only attributes whose live value differs from the desired value are sent.

        Args:
            reference_object: The live object, attributes included
            desired: Mapping of property name to value or list of values
            create_references: Create missing referenced objects

        Returns:
            Updated object information, ``Outcome.NO_CHANGE_NEEDED`` when the
            object already matches, or ``Outcome.FAILURE``
        """
        object_id = reference_object.get('id')
        object_type_id = object_type_id_of(reference_object)
        if object_id is None or object_type_id is None:
            self.logger.error(f"Cannot update object: missing id or object type in {reference_object}")
            return Outcome.FAILURE

        schema = self.client.get_schema(object_type_id)
        if not schema:
            self.logger.error(f"Cannot update object {object_id}: no schema for object type {object_type_id}")
            return Outcome.FAILURE

        updates = []
        seen_ids = set()
        for property_name, value in desired.items():
            attribute = self._resolve_attribute(schema, property_name)
            if attribute is None or self._is_duplicate(attribute, property_name, seen_ids):
                continue

            values = as_value_list(value)
            if attribute.is_reference:
                values = self._resolve_references(attribute, values, desired, create_references, depth=0, chain=())

            result = diff_attribute(reference_object, values, attribute.id,
                                    attribute.is_reference, attribute.is_label)
            if result is Outcome.NO_CHANGE_NEEDED:
                self.logger.debug(f"No change needed for '{property_name}' on object {object_id}")
                continue
            updates.append(result)

        if not updates:
            self.logger.info(f"Object {reference_object.get('objectKey', object_id)} already up to date")
            return Outcome.NO_CHANGE_NEEDED

        return self.client.submit_update(object_id, object_type_id, updates)

    def delete(self, object_id: Union[int, str]) -> bool:
        """Delete an object. This cannot be undone."""
        return self.client.delete_object(object_id)

    def upsert(self, object_type_id: int, desired: Dict[str, Any],
               create_references: bool = False) -> Union[Dict[str, Any], Outcome]:
        """
        Update the object carrying the desired label, or create it.

        Returns:
            Created or updated object, ``Outcome.NO_CHANGE_NEEDED`` or
            ``Outcome.FAILURE`` (also when several objects share the label)
        """
        label = desired.get(LABEL_PROPERTY)
        if is_empty_value(label) or isinstance(label, (list, tuple, set)):
            self.logger.error(f"Upsert needs a single '{LABEL_PROPERTY}' value, got {label!r}")
            return Outcome.FAILURE

        lookup = self.client.lookup_label(str(label), object_type_id)
        if lookup.is_found:
            return self.update(lookup.object, desired, create_references)

        if lookup.status is Outcome.AMBIGUOUS:
            self.logger.error(f"Refusing to upsert '{label}': several objects in type {object_type_id} share that label")
            return Outcome.FAILURE

        return self.create(object_type_id, desired, create_references)

    def _resolve_attribute(self, schema: ObjectTypeSchema, property_name: str) -> Optional[AttributeDefinition]:
        attribute = schema.resolve(property_name)
        if attribute is None:
            self.logger.warning(f"Property '{property_name}' not found in schema of object type "
                                f"{schema.object_type_id}, skipping")
        return attribute

    def _is_duplicate(self, attribute: AttributeDefinition, property_name: str, seen_ids: set) -> bool:
        if attribute.id in seen_ids:
            self.logger.warning(f"Property '{property_name}' maps to attribute {attribute.id} '{attribute.name}' "
                                f"which is already set, skipping")
            return True
        seen_ids.add(attribute.id)
        return False

    def _resolve_references(self, attribute: AttributeDefinition, labels: List[Any],
                            source_desired: Dict[str, Any], create_references: bool,
                            depth: int, chain: StubChain) -> List[Any]:
        """
        Turn reference labels into referenced object IDs.

        Labels that cannot be resolved are left out of the result.
        """
        reference_type_id = attribute.reference_object_type_id
        object_ids = []

        for label in labels:
            if is_empty_value(label):
                self.logger.debug(f"Ignoring blank reference value for '{attribute.name}'")
                continue
            label = str(label).strip()
            lookup = self.client.lookup_label(label, reference_type_id)

            if lookup.is_found:
                object_ids.append(lookup.object['id'])
                continue

            if lookup.status is Outcome.AMBIGUOUS:
                self.logger.warning(f"Skipping '{label}' for '{attribute.name}': label is ambiguous "
                                    f"in object type {reference_type_id}")
                continue

            if not create_references:
                self.logger.warning(f"Skipping '{label}' for '{attribute.name}': no object with that label "
                                    f"in object type {reference_type_id}")
                continue

            created = self._create_stub(label, reference_type_id, source_desired, depth + 1, chain)
            if created:
                object_ids.append(created['id'])
            else:
                self.logger.error(f"Could not create reference object '{label}' in object type "
                                  f"{reference_type_id} for '{attribute.name}'")

        return object_ids

    def _create_stub(self, label: str, object_type_id: int, source_desired: Dict[str, Any],
                     depth: int, chain: StubChain) -> Union[Dict[str, Any], Outcome]:
        """
        Create a minimal object to satisfy a reference.

        The stub carries the label plus every property of the source object
        that the referenced type also has, except Label, Description and Notes.
        """
        if depth > self.max_reference_depth:
            self.logger.error(f"Not creating '{label}' in object type {object_type_id}: "
                              f"reference depth {depth} exceeds maximum {self.max_reference_depth}")
            return Outcome.FAILURE

        key = (object_type_id, label)
        if key in chain:
            path = ' -> '.join(f"{type_id}:{name}" for type_id, name in chain + (key,))
            self.logger.error(f"Reference cycle detected while creating stub objects: {path}")
            return Outcome.FAILURE

        schema = self.client.get_schema(object_type_id)
        if not schema:
            self.logger.error(f"Cannot create stub '{label}': no schema for object type {object_type_id}")
            return Outcome.FAILURE

        stub = {LABEL_PROPERTY: label}
        for property_name, value in source_desired.items():
            if property_name in STUB_EXCLUDED_PROPERTIES:
                continue
            target = schema.resolve(property_name)
            # The stub keeps its own label, whatever the label attribute is called
            if target is not None and not target.is_label:
                stub[property_name] = value

        self.logger.info(f"Creating reference object '{label}' in object type {object_type_id} "
                         f"with properties {sorted(stub)}")
        return self._create(object_type_id, stub, True, depth, chain + (key,), schema=schema)
