from menu_metadata.catalog.models import ImageUpload, MenuItemMetadata, RequestInput
from menu_metadata.catalog.prompts import BuiltRequest, build_request
from menu_metadata.catalog.schema import MetadataField, ProvidedFields, build_result_schema, required_fields

__all__ = [
    "BuiltRequest",
    "ImageUpload",
    "MenuItemMetadata",
    "MetadataField",
    "ProvidedFields",
    "RequestInput",
    "build_request",
    "build_result_schema",
    "required_fields",
]
