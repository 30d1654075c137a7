"""
Jira Objects

A client for Jira Assets that reads object type schemas and objects, runs
AQL searches, and creates or updates objects described by human readable
property names, resolving reference attributes by label.
"""

__version__ = "1.0.0"

from .attribute_diff import diff_attribute
from .config import Config, ConfigurationError, setup_logging
from .jira_assets_client import (
    AssetNotFoundError,
    JiraAssetsAPIError,
    JiraAssetsClient,
    SchemaNotFoundError,
)
from .models import AttributeDefinition, LabelLookup, ObjectTypeSchema, Outcome
from .object_manager import ObjectManager

__all__ = [
    'AssetNotFoundError',
    'AttributeDefinition',
    'Config',
    'ConfigurationError',
    'JiraAssetsAPIError',
    'JiraAssetsClient',
    'LabelLookup',
    'ObjectManager',
    'ObjectTypeSchema',
    'Outcome',
    'SchemaNotFoundError',
    'diff_attribute',
    'setup_logging'
]
