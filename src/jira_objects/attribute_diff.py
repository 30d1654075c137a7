"""
Attribute drift detection between a live object and desired values.
"""

from typing import Any, Dict, List, Optional, Union

from .models import Outcome


def as_value_list(value: Any) -> List[Any]:
    """Normalise a scalar or sequence of values into a list (None -> [])."""
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


def build_attribute_entry(attribute_type_id: int, values: List[Any]) -> Dict[str, Any]:
    """Wrap values in the API attribute entry format."""
    return {
        "objectTypeAttributeId": attribute_type_id,
        "objectAttributeValues": [{"value": value} for value in values]
    }


def find_live_attribute(live_object: Dict[str, Any], attribute_type_id: int) -> Optional[Dict[str, Any]]:
    """Return the live attribute entry for an attribute ID, if the object has one."""
    for attribute in live_object.get('attributes', []):
        entry_id = attribute.get('objectTypeAttributeId')
        if entry_id is None:
            entry_id = attribute.get('objectTypeAttribute', {}).get('id')
        if entry_id is not None and str(entry_id) == str(attribute_type_id):
            return attribute
    return None


def live_reference_ids(entry: Dict[str, Any]) -> set:
    """Collect referenced object IDs from a live attribute entry."""
    ids = set()
    for value in entry.get('objectAttributeValues', []):
        referenced = value.get('referencedObject')
        if isinstance(referenced, dict) and referenced.get('id') is not None:
            ids.add(str(referenced['id']))
        elif value.get('value') is not None:
            ids.add(str(value['value']))
    return ids


def live_scalar_value(entry: Dict[str, Any]) -> Any:
    values = entry.get('objectAttributeValues', [])
    if not values:
        return None
    return values[0].get('value')


def diff_attribute(live_object: Dict[str, Any], desired_value: Any, attribute_type_id: int,
                   is_reference: bool, is_label: bool = False) -> Union[Dict[str, Any], Outcome]:
    """
    Compare one desired attribute value against the live object.

    Reference attributes compare the set of referenced object IDs, so order
    does not matter. Scalar attributes compare the single live value with the
    single desired value.

    Args:
        live_object: Object as returned by the API, attributes included
        desired_value: Desired scalar, list of scalars or list of referenced object IDs
        attribute_type_id: Schema attribute ID
        is_reference: Whether the attribute holds references to other objects
        is_label: Whether the attribute is the object's label attribute

    Returns:
        An attribute entry ready to be sent, or ``Outcome.NO_CHANGE_NEEDED``
    """
    desired_values = as_value_list(desired_value)
    entry = find_live_attribute(live_object, attribute_type_id)

    if entry is None and is_label and live_object.get('label') is not None:
        entry = {'objectAttributeValues': [{'value': live_object['label']}]}

    if entry is None:
        changed = bool(desired_values)
    elif is_reference:
        desired_ids = {str(value) for value in desired_values}
        changed = bool(live_reference_ids(entry) ^ desired_ids)
    else:
        live_value = live_scalar_value(entry)
        if len(desired_values) == 1:
            wanted = desired_values[0]
        else:
            wanted = desired_values or None

        if live_value is None or wanted is None:
            changed = live_value is not wanted
        else:
            changed = _as_text(live_value) != _as_text(wanted)

    if not changed:
        return Outcome.NO_CHANGE_NEEDED
    return build_attribute_entry(attribute_type_id, desired_values)
