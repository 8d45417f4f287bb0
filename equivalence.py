"""
Instance-level equivalence checks between an original and an expanded schema.
"""

import logging
from typing import Any, Dict, Iterable, List

from jsonschema import validate, ValidationError

from expander import desugar_nullable, is_object

logger = logging.getLogger(__name__)


def validate_schema(schema, instance) -> bool:
    try:
        validate(instance, schema)
        return True
    except ValidationError:
        return False


def bundle_for_validation(schema: Any, definitions: Any) -> Any:
    """
    Put a root schema and its definitions source into one document.

    The source's top-level keys are carried along so that local pointers in
    the root (``#/components/schemas/...``) resolve inside the bundle. The
    root's own keys take precedence. ``nullable`` is desugared on both sides
    so the bundle carries the same null semantics as the expanded schema.
    """
    if not is_object(schema) or not is_object(definitions):
        return desugar_nullable(schema)

    bundle: Dict[str, Any] = dict(definitions)
    bundle.update(schema)
    return desugar_nullable(bundle)


def validate_equivalence(original_schema, normalized_schema, test_instances: Iterable[Any]) -> List[Any]:
    """
    Validate every instance against both schemas.

    Args:
        original_schema: The schema before expansion (bundled with its definitions)
        normalized_schema: The expanded schema
        test_instances: Instances to try

    Returns:
        The instances the two schemas disagree on
    """
    mismatches = []
    for instance in test_instances:
        original_valid = validate_schema(original_schema, instance)
        normalized_valid = validate_schema(normalized_schema, instance)
        if original_valid != normalized_valid:
            logger.info(
                "Mismatch on %r: original=%s expanded=%s",
                instance, original_valid, normalized_valid,
            )
            mismatches.append(instance)

    return mismatches


def is_equivalent(original_schema, normalized_schema, test_instances: Iterable[Any]) -> bool:
    return not validate_equivalence(original_schema, normalized_schema, test_instances)
