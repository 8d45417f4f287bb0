#!/usr/bin/env python3
"""
JSON Schema Expander CLI

A command-line tool for expanding references in JSON Schema and OpenAPI documents.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

import yaml
from jsonschema import SchemaError

from equivalence import bundle_for_validation, validate_equivalence
from expander import SchemaExpander, SchemaExpansionError, DEFAULT_SORT_ORDER


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Expand $ref pointers in a JSON Schema into a single definitions table"
    )

    parser.add_argument(
        "input",
        nargs="?",
        type=str,
        help="Input schema file, JSON or YAML (or use stdin if not specified)"
    )

    parser.add_argument(
        "-d", "--definitions",
        type=str,
        help="Document to resolve pointers against (default is the input itself)"
    )

    parser.add_argument(
        "-r", "--ref",
        type=str,
        help="Expand the schema at this pointer instead of the whole input"
    )

    parser.add_argument(
        "-p", "--paths",
        action="append",
        help="Path prefix of pointers to hoist (repeatable, default components and schemas)"
    )

    parser.add_argument(
        "--sort-order",
        type=str,
        help="Comma separated keys to put first (default %s)" % ",".join(DEFAULT_SORT_ORDER)
    )

    parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail on references that cannot be resolved"
    )

    parser.add_argument(
        "-o", "--output",
        type=str,
        help="Output file (default is stdout)"
    )

    parser.add_argument(
        "--pretty",
        action="store_true",
        help="Pretty-print the output JSON"
    )

    parser.add_argument(
        "--check",
        type=str,
        metavar="INSTANCES",
        help="JSON array of instances the expanded schema must agree with the input on"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log the transformations applied"
    )

    return parser.parse_args(argv)


def load_document(path=None):
    """Load a JSON or YAML document from a file, or JSON from stdin."""
    if path is None:
        return json.load(sys.stdin)

    path = Path(path)
    with open(path, "r") as f:
        if path.suffix in (".yaml", ".yml"):
            return yaml.safe_load(f)
        return json.load(f)


def main(argv=None):
    """Main entry point for the CLI."""
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        document = load_document(args.input)
        definitions = load_document(args.definitions) if args.definitions else document
        instances = load_document(args.check) if args.check else None
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        print(f"Error reading input: {e}", file=sys.stderr)
        return 1

    schema = {"$ref": args.ref} if args.ref else document

    config = {"strict": args.strict}
    if args.paths:
        config["paths"] = args.paths
    if args.sort_order:
        config["sort_order"] = [key.strip() for key in args.sort_order.split(",") if key.strip()]

    expander = SchemaExpander(config)
    try:
        expanded = expander.expand(schema, definitions)
    except SchemaExpansionError as e:
        print(f"Error expanding schema: {e}", file=sys.stderr)
        return 1

    text = json.dumps(expanded, indent=2 if args.pretty else None)
    if args.output:
        with open(args.output, "w") as f:
            f.write(text + "\n")
    else:
        print(text)

    if instances is not None:
        try:
            mismatches = validate_equivalence(
                bundle_for_validation(schema, definitions), expanded, instances
            )
        except SchemaError as e:
            print(f"Error checking instances: {e.message}", file=sys.stderr)
            return 1
        for instance in mismatches:
            print(f"Mismatch: {json.dumps(instance)}", file=sys.stderr)
        if mismatches:
            return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
