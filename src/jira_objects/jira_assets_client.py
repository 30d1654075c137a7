"""
Jira Assets API Client

This module provides the HTTP transport for the Jira Assets API together with
the read-side operations: schema retrieval, object lookup by ID, paginated
listing by object type, AQL searches and label lookups.

Public operations never raise API errors. Failures are logged and turned into
``Outcome`` sentinels so callers can branch on the result.

Based on the Jira Service Management Assets REST API
Reference: https://developer.atlassian.com/cloud/assets/rest/api-group-object/
"""

import logging
from typing import Any, Dict, List, Optional, Union

import requests

from .config import Config
from .models import LabelLookup, ObjectTypeSchema, Outcome


PAGE_SIZE = 25


class JiraAssetsAPIError(Exception):
    """Base exception for Jira Assets API errors."""
    pass


class AssetNotFoundError(JiraAssetsAPIError):
    """Raised when an asset is not found."""
    pass


class SchemaNotFoundError(JiraAssetsAPIError):
    """Raised when an object type schema is not found."""
    pass


def quote_aql(value: Any) -> str:
    """Quote a value for use on the right-hand side of an AQL comparison."""
    text = str(value).replace('\\', '\\\\').replace('"', '\\"')
    return f'"{text}"'


class JiraAssetsClient:
    """Client for interacting with Jira Assets API."""

    def __init__(self, config: Config, session: Optional[requests.Session] = None,
                 logger: Optional[logging.Logger] = None):
        """
        Initialize the Jira Assets API client.

        Args:
            config: Loaded configuration providing the workspace and credentials
            session: Optional pre-built session (mainly for tests)
            logger: Optional logger, defaults to ``jira_objects.assets_client``
        """
        self.workspace_id = config.workspace_id
        self.assets_base_url = config.assets_base_url
        self.logger = logger or logging.getLogger('jira_objects.assets_client')

        self.session = session if session is not None else requests.Session()
        self.session.headers.update({
            'Authorization': f"Basic {config.auth_token}",
            'Accept': 'application/json',
            'Content-Type': 'application/json'
        })

        self.logger.info(f"Initialized Jira Assets Client for workspace {self.workspace_id}")

    def _handle_response(self, response: requests.Response, context: str = "") -> Any:
        """
        Handle API response and raise appropriate exceptions.

        Args:
            response: The HTTP response object
            context: Additional context for error messages

        Returns:
            Parsed JSON response, or an empty dict for bodiless responses

        Raises:
            JiraAssetsAPIError: For various API errors
        """
        self.logger.debug(f"Assets API Response [{context}]: {response.status_code} - {response.text[:500]}")

        if response.status_code == 429:
            retry_after = response.headers.get('Retry-After', '60')
            raise JiraAssetsAPIError(f"Rate limit exceeded [{context}]. Retry after {retry_after} seconds")

        if response.status_code == 401:
            raise JiraAssetsAPIError(f"Authentication failed [{context}]: Check the configured credential string")

        if response.status_code == 403:
            raise JiraAssetsAPIError(f"Permission denied [{context}]: Check Assets permissions for this account")

        if response.status_code == 404:
            if "objecttype" in context.lower():
                raise SchemaNotFoundError(f"Object type not found [{context}]")
            elif "object" in context.lower():
                raise AssetNotFoundError(f"Asset not found [{context}]")
            raise JiraAssetsAPIError(f"Resource not found [{context}]: {response.text}")

        if not response.ok:
            raise JiraAssetsAPIError(f"Assets API request failed [{context}]: {response.status_code} - {response.text}")

        if response.status_code == 204 or not response.text:
            return {}

        try:
            return response.json()
        except ValueError as e:
            raise JiraAssetsAPIError(f"Failed to parse JSON response [{context}]: {e}")

    def request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Any:
        """
        Issue one request against the workspace API.

        Args:
            method: HTTP method (GET, POST, PUT or DELETE)
            path: Path relative to the workspace base URL, query string included
            body: Optional JSON body

        Returns:
            Parsed JSON response

        Raises:
            JiraAssetsAPIError: For transport failures and error responses
        """
        url = f"{self.assets_base_url}/{path.lstrip('/')}"
        context = f"{method} {url}"
        self.logger.debug(f"{method} to: {url} with payload: {body}")

        try:
            response = self.session.request(method, url, json=body)
        except requests.exceptions.RequestException as e:
            raise JiraAssetsAPIError(f"Network error [{context}]: {e}")

        try:
            return self._handle_response(response, context)
        except JiraAssetsAPIError:
            if body is not None:
                self.logger.debug(f"Failed request body [{context}]: {body}")
            raise

    def get_schema(self, object_type_id: int) -> Union[ObjectTypeSchema, Outcome]:
        """
        Get the attribute schema of an object type.

        Args:
            object_type_id: The object type ID

        Returns:
            The schema, or ``Outcome.NOT_FOUND`` on any error or empty result
        """
        self.logger.info(f"Retrieving attributes for object type {object_type_id}")

        path = f"objecttype/{object_type_id}/attributes?excludeParentAttributes=true&includeValueExist=true"
        try:
            data = self.request('GET', path)
        except JiraAssetsAPIError as e:
            self.logger.error(f"Failed to retrieve schema for object type {object_type_id}: {e}")
            return Outcome.NOT_FOUND

        # Handle both list and dict responses
        attributes = data if isinstance(data, list) else data.get('values', [])
        if not attributes:
            self.logger.warning(f"No attributes returned for object type {object_type_id}")
            return Outcome.NOT_FOUND

        try:
            schema = ObjectTypeSchema.from_api(object_type_id, attributes)
        except (KeyError, TypeError, ValueError) as e:
            self.logger.error(f"Malformed schema for object type {object_type_id}: {e}")
            return Outcome.NOT_FOUND

        self.logger.info(f"Retrieved {len(schema)} attributes for object type {object_type_id}")
        return schema

    def get_by_id(self, object_id: Union[int, str]) -> Union[Dict[str, Any], Outcome]:
        """
        Get an object by its ID (an object key such as HW-0003 also works).

        Returns:
            Object information including attributes, or ``Outcome.NOT_FOUND``
        """
        self.logger.info(f"Retrieving object {object_id}")

        try:
            data = self.request('GET', f"object/{object_id}")
        except JiraAssetsAPIError as e:
            self.logger.error(f"Failed to retrieve object {object_id}: {e}")
            return Outcome.NOT_FOUND

        if not data:
            self.logger.warning(f"Object {object_id} returned an empty response")
            return Outcome.NOT_FOUND
        return data

    def _search_page(self, aql_query: str, start: int = 0) -> Dict[str, Any]:
        """Fetch one page of AQL results. Raises JiraAssetsAPIError."""
        path = "object/aql" if start == 0 else f"object/aql?startAt={start}"
        data = self.request('POST', path, {"qlQuery": aql_query})

        if isinstance(data, list):
            return {'values': data, 'total': len(data)}

        values = data.get('values', data.get('objectEntries', []))
        total = data.get('total', data.get('totalFilterCount', len(values)))
        return {'values': values, 'total': int(total)}

    def _search_all(self, aql_query: str) -> List[Dict[str, Any]]:
        """Run an AQL query and follow pagination until ``total`` is reached."""
        first = self._search_page(aql_query)
        total = first['total']
        objects = list(first['values'])

        start = PAGE_SIZE
        while len(objects) < total:
            page = self._search_page(aql_query, start=start)
            if not page['values']:
                self.logger.warning(f"AQL query stopped early at {len(objects)} of {total} objects")
                break
            objects.extend(page['values'])
            start += PAGE_SIZE

        return objects

    def list_by_type(self, object_type: Optional[str] = None,
                     object_type_id: Optional[int] = None) -> Union[List[Dict[str, Any]], Outcome]:
        """
        List every object of one object type.

        Exactly one selector must be supplied.

        Args:
            object_type: Object type name
            object_type_id: Object type ID

        Returns:
            All objects of the type (empty list when there are none), or
            ``Outcome.FAILURE`` if the search failed

        Raises:
            ValueError: If both or neither selector is given
        """
        if (object_type is None) == (object_type_id is None):
            raise ValueError("Exactly one of object_type or object_type_id must be supplied")

        if object_type is not None:
            aql_query = f"objectType = {quote_aql(object_type)}"
        else:
            aql_query = f"objectTypeId = {int(object_type_id)}"

        self.logger.info(f"Listing objects with AQL: {aql_query}")

        try:
            objects = self._search_all(aql_query)
        except JiraAssetsAPIError as e:
            self.logger.error(f"Failed to list objects [{aql_query}]: {e}")
            return Outcome.FAILURE

        if not objects:
            self.logger.info(f"No results were returned for {aql_query}")
        else:
            self.logger.info(f"Retrieved {len(objects)} objects for {aql_query}")
        return objects

    def query_by_aql(self, aql_query: str) -> Union[List[Dict[str, Any]], Outcome]:
        """
        Find objects using Assets Query Language (AQL).

        The query string is passed to the service unchanged.

        Returns:
            Matching objects, ``Outcome.NOT_FOUND`` for zero matches or
            ``Outcome.FAILURE`` if the search failed
        """
        self.logger.info(f"Executing AQL query: {aql_query}")

        try:
            objects = self._search_all(aql_query)
        except JiraAssetsAPIError as e:
            self.logger.error(f"AQL query failed [{aql_query}]: {e}")
            return Outcome.FAILURE

        if not objects:
            self.logger.info(f"AQL query returned no objects: {aql_query}")
            return Outcome.NOT_FOUND

        self.logger.info(f"AQL query returned {len(objects)} objects")
        return objects

    def lookup_label(self, label: str, object_type_id: int) -> LabelLookup:
        """
        Look up an object by label within an object type.

        Unlike ``find_by_label_and_type`` this keeps the distinction between
        no match and several matches.
        """
        aql_query = f"Label = {quote_aql(label)} AND objectTypeId = {int(object_type_id)}"

        try:
            page = self._search_page(aql_query)
        except JiraAssetsAPIError as e:
            self.logger.error(f"Label lookup failed for '{label}' in object type {object_type_id}: {e}")
            return LabelLookup(Outcome.NOT_FOUND)

        objects = page['values']
        count = max(page['total'], len(objects))

        if count == 0:
            self.logger.info(f"No object labelled '{label}' found in object type {object_type_id}")
            return LabelLookup(Outcome.NOT_FOUND)

        if count > 1:
            object_keys = [obj.get('objectKey', 'unknown') for obj in objects]
            self.logger.warning(f"Multiple objects labelled '{label}' found in object type {object_type_id}: {object_keys}")
            return LabelLookup(Outcome.AMBIGUOUS)

        found = objects[0]
        self.logger.debug(f"Resolved '{label}' in object type {object_type_id} to object {found.get('id')}")
        return LabelLookup.found(found)

    def find_by_label_and_type(self, label: str, object_type_id: int) -> Union[Dict[str, Any], Outcome]:
        """
        Find the single object with a given label in an object type.

        Returns:
            The object, or ``Outcome.NOT_FOUND`` when there is no match or more
            than one match (the log tells the two apart)
        """
        result = self.lookup_label(label, object_type_id)
        if result.is_found:
            return result.object
        return Outcome.NOT_FOUND

    def submit_create(self, object_type_id: int,
                      attributes: List[Dict[str, Any]]) -> Union[Dict[str, Any], Outcome]:
        """
        Send an object creation request.

        Args:
            object_type_id: The object type ID to create the object in
            attributes: Attribute entries in API format

        Returns:
            Created object information, or ``Outcome.FAILURE``
        """
        self.logger.info(f"Creating new object in object type {object_type_id} with {len(attributes)} attributes")

        payload = {
            "objectTypeId": str(object_type_id),
            "attributes": attributes
        }

        try:
            data = self.request('POST', "object/create", payload)
        except JiraAssetsAPIError as e:
            self.logger.error(f"Failed to create object in type {object_type_id}: {e} "
                              f"(POST {self.assets_base_url}/object/create body={payload})")
            return Outcome.FAILURE

        if not isinstance(data, dict) or not data.get('objectKey'):
            self.logger.error(f"Create response carried no object key "
                              f"(POST {self.assets_base_url}/object/create body={payload}): {data}")
            return Outcome.FAILURE

        self.logger.info(f"Successfully created object {data['objectKey']} in object type {object_type_id}")
        return data

    def submit_update(self, object_id: Union[int, str], object_type_id: int,
                      attributes: List[Dict[str, Any]]) -> Union[Dict[str, Any], Outcome]:
        """
        Send an object update request containing only changed attributes.

        Returns:
            Updated object information, or ``Outcome.FAILURE``
        """
        self.logger.info(f"Updating object {object_id} with {len(attributes)} attribute changes")

        url = f"{self.assets_base_url}/object/{object_id}"
        payload = {
            "objectTypeId": str(object_type_id),
            "attributes": attributes
        }

        try:
            data = self.request('PUT', f"object/{object_id}", payload)
        except JiraAssetsAPIError as e:
            self.logger.error(f"Failed to update object {object_id}: {e} (PUT {url} body={payload})")
            return Outcome.FAILURE

        if not isinstance(data, dict) or not data.get('objectKey'):
            self.logger.error(f"Update response carried no object key (PUT {url} body={payload}): {data}")
            return Outcome.FAILURE

        self.logger.info(f"Successfully updated object {data['objectKey']}")
        return data

    def delete_object(self, object_id: Union[int, str]) -> bool:
        """
        Delete an object by its ID. This cannot be undone.

        Returns:
            True if deletion was successful, False otherwise
        """
        self.logger.info(f"Deleting object {object_id}")

        url = f"{self.assets_base_url}/object/{object_id}"
        try:
            response = self.session.request('DELETE', url)
        except requests.exceptions.RequestException as e:
            self.logger.error(f"Network error while deleting object {object_id}: {e}")
            return False

        # Handle successful deletion (204 No Content)
        if response.status_code == 204:
            self.logger.info(f"Successfully deleted object {object_id}")
            return True

        try:
            self._handle_response(response, f"DELETE {url}")
        except JiraAssetsAPIError as e:
            self.logger.error(f"Failed to delete object {object_id}: {e}")
            return False

        self.logger.info(f"Successfully deleted object {object_id}")
        return True
