"""Open-data catalogue decoding and resource lookup.

Two document shapes are served for the DFS datasets:

  * a datapackage: ``{"resources": [...]}``
  * a CKAN action response: ``{"success": true, "result": {"resources": [...]}}``

Each resource carries ``name``, ``last_modified`` and ``path``.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
import logging
from typing import Any

from .errors import DecodeError, NetworkError, ResourceNotFound
from .models import ResourceDescriptor, parse_timestamp

logger = logging.getLogger(__name__)


def _resource_list(document: Any) -> list[Any]:
    if not isinstance(document, dict):
        raise DecodeError(f"Catalogue is not a JSON object: {type(document).__name__}")
    if "success" in document:
        if not document.get("success"):
            error = document.get("error") or "no detail"
            raise NetworkError(f"Catalogue request reported success=false: {error}")
        document = document.get("result")
        if not isinstance(document, dict):
            raise DecodeError("Catalogue 'result' is missing or not an object")
    resources = document.get("resources")
    if not isinstance(resources, list):
        raise DecodeError("Catalogue has no 'resources' list")
    return resources


def decode_catalogue(document: Any) -> list[ResourceDescriptor]:
    """Turn a decoded catalogue document into resource descriptors.

    Raises:
        NetworkError: the wrapped form reported ``success: false``.
        DecodeError: the document does not have either accepted shape.
    """
    descriptors: list[ResourceDescriptor] = []
    for entry in _resource_list(document):
        if not isinstance(entry, dict):
            raise DecodeError(f"Catalogue resource is not an object: {entry!r}")
        try:
            descriptors.append(
                ResourceDescriptor(
                    name=str(entry["name"]),
                    last_modified=parse_timestamp(str(entry["last_modified"])),
                    path=str(entry["path"]),
                )
            )
        except KeyError as e:
            raise DecodeError(f"Catalogue resource missing field {e}: {entry!r}") from e
        except ValueError as e:
            raise DecodeError(
                f"Bad last_modified on resource {entry.get('name')!r}: {e}"
            ) from e
    logger.debug("Catalogue lists %d resources", len(descriptors))
    return descriptors


def find_resource(
    resources: Iterable[ResourceDescriptor], prefixes: Sequence[str]
) -> ResourceDescriptor:
    """Pick the resource for the first prefix (in priority order) that matches."""
    resources = list(resources)
    for prefix in prefixes:
        for resource in resources:
            if resource.name.startswith(prefix):
                return resource
    raise ResourceNotFound(list(prefixes))


__all__ = ["decode_catalogue", "find_resource"]
