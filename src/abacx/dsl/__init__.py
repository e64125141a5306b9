from .lint import analyze_document
from .validate import POLICY_DOCUMENT_SCHEMA, schema_errors, validate_document

__all__ = ["analyze_document", "POLICY_DOCUMENT_SCHEMA", "schema_errors", "validate_document"]
