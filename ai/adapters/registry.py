"""Schema Registry for structured-output targets.

Every structured task declares a Pydantic model. The registry converts that
model into a self-contained JSON Schema (for backends that take an explicit
schema object) and validates raw backend output against it.
"""
import json
import re
from typing import Dict, Any, Type, TypeVar

from pydantic import BaseModel, ValidationError

from core.errors import SchemaValidationError

T = TypeVar("T", bound=BaseModel)

_CODE_FENCE = re.compile(r"^\s*```(?:json)?\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)


class SchemaRegistry:
    """Converts Pydantic models used as structured-output targets and validates backend output against them."""

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def json_schema(self, model_class: Type[BaseModel]) -> Dict[str, Any]:
        """
        Convert a Pydantic model to a JSON Schema without $ref indirection.

        Several backends reject "$defs"/"$ref", so nested models are inlined.
        """
        schema = model_class.model_json_schema()
        defs = schema.get("$defs", {})

        parameters: Dict[str, Any] = {
            "type": "object",
            "properties": {},
            "required": []
        }

        if "properties" in schema:
            parameters["properties"] = self._convert_properties(schema["properties"], defs)

        if "required" in schema:
            parameters["required"] = schema["required"]

        if "description" in schema:
            parameters["description"] = schema["description"]

        return parameters

    def _convert_properties(self, properties: Dict[str, Any], defs: Dict[str, Any]) -> Dict[str, Any]:
        """Convert Pydantic properties to plain JSON Schema."""
        return {
            prop_name: self._convert_schema_type(prop_schema, defs)
            for prop_name, prop_schema in properties.items()
        }

    def _convert_schema_type(self, schema: Dict[str, Any], defs: Dict[str, Any]) -> Dict[str, Any]:
        """Convert a single schema node, resolving references."""
        if "$ref" in schema:
            ref_name = schema["$ref"].rsplit("/", 1)[-1]
            resolved = dict(defs.get(ref_name, {}))
            # Keep the property's own description over the model docstring
            if "description" in schema:
                resolved["description"] = schema["description"]
            return self._convert_schema_type(resolved, defs)

        if len(schema.get("allOf", [])) == 1:
            unwrapped = {**schema["allOf"][0], **{k: v for k, v in schema.items() if k != "allOf"}}
            return self._convert_schema_type(unwrapped, defs)

        result: Dict[str, Any] = {}

        # Handle type
        if "type" in schema:
            result["type"] = schema["type"]
        elif "anyOf" in schema:
            # Optional[X] comes through as anyOf [X, null]
            variants = [self._convert_schema_type(t, defs) for t in schema["anyOf"]]
            non_null = [v for v in variants if v.get("type") != "null"]
            if len(non_null) == 1 and len(variants) == 2:
                merged = dict(non_null[0])
                merged["type"] = [non_null[0].get("type", "string"), "null"]
                result.update(merged)
            else:
                result["anyOf"] = variants

        # Handle description
        if "description" in schema:
            result["description"] = schema["description"]

        # Handle enum
        if "enum" in schema:
            result["enum"] = schema["enum"]

        # Handle array items
        if schema.get("type") == "array" and "items" in schema:
            result["items"] = self._convert_schema_type(schema["items"], defs)

        # Handle nested objects
        if schema.get("type") == "object" and "properties" in schema:
            result["properties"] = self._convert_properties(schema["properties"], defs)
            if "required" in schema:
                result["required"] = schema["required"]

        # Handle numeric and string constraints
        for constraint in ["minimum", "maximum", "exclusiveMinimum", "exclusiveMaximum",
                           "minLength", "maxLength", "pattern", "minItems", "maxItems"]:
            if constraint in schema:
                result[constraint] = schema[constraint]

        return result

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self, model_class: Type[T], value: Any) -> T:
        """Validate an already-decoded value against the model."""
        try:
            return model_class.model_validate(value)
        except ValidationError as e:
            raise SchemaValidationError(f"Response failed schema validation: {e}") from e

    def validate_json(self, model_class: Type[T], content: Any) -> T:
        """
        Validate backend content that is either a JSON string or a parsed object.

        A surrounding markdown code fence is removed before decoding; nothing
        else about the text is reinterpreted.
        """
        if isinstance(content, (dict, list)):
            return self.validate(model_class, content)
        if not isinstance(content, str):
            raise SchemaValidationError(
                f"Expected JSON content for structured response, got {type(content).__name__}"
            )

        match = _CODE_FENCE.match(content)
        raw = match.group(1) if match else content
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            raise SchemaValidationError(f"Failed to parse JSON content: {e}") from e
        return self.validate(model_class, parsed)


# Global registry instance
_registry = SchemaRegistry()


def to_json_schema(model_class: Type[BaseModel]) -> Dict[str, Any]:
    """Self-contained JSON Schema for a model via the global registry."""
    return _registry.json_schema(model_class)


def validate_json(model_class: Type[T], content: Any) -> T:
    """Parse and validate content against a model via the global registry."""
    return _registry.validate_json(model_class, content)
