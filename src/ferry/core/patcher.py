"""Definition patcher: point one container of a definition template at an image.

The template is a JSON resource definition with a ``containerDefinitions``
list. Only the ``image`` field of the single entry named by the caller is
replaced; every other field, and the order of all keys, is left as loaded.
The template file itself is never written.
"""

import copy
import json
import logging
from pathlib import Path
from typing import Any

from ..constants import LATEST_TAG
from ..errors import DefinitionInvalid, PatchAmbiguous, PatchTargetNotFound
from ..models import PublishedReference, ResourceDefinition

logger = logging.getLogger(__name__)

CONTAINERS_KEY = "containerDefinitions"


def load_template(template_path: Path) -> dict[str, Any]:
    """Load a definition template.

    Raises:
        DefinitionInvalid: If the file is missing, unreadable or not a JSON object
    """
    if not template_path.exists():
        raise DefinitionInvalid(
            f"Definition template not found: {template_path}", {"path": str(template_path)}
        )
    try:
        document = json.loads(template_path.read_text())
    except json.JSONDecodeError as e:
        raise DefinitionInvalid(
            f"Definition template is not valid JSON: {e}", {"path": str(template_path)}
        ) from e
    if not isinstance(document, dict):
        raise DefinitionInvalid(
            "Definition template must be a JSON object", {"path": str(template_path)}
        )
    return document


def validate_definition(document: dict[str, Any]) -> list[str]:
    """Check the document has the shape the control plane expects.

    Returns:
        List of problems; empty if the document is valid
    """
    problems: list[str] = []
    family = document.get("family")
    if not isinstance(family, str) or not family:
        problems.append("'family' must be a non-empty string")

    containers = document.get(CONTAINERS_KEY)
    if not isinstance(containers, list) or not containers:
        problems.append(f"'{CONTAINERS_KEY}' must be a non-empty list")
        return problems

    seen: set[str] = set()
    for index, container in enumerate(containers):
        if not isinstance(container, dict):
            problems.append(f"{CONTAINERS_KEY}[{index}] must be an object")
            continue
        name = container.get("name")
        if not isinstance(name, str) or not name:
            problems.append(f"{CONTAINERS_KEY}[{index}].name must be a non-empty string")
        elif name in seen:
            problems.append(f"container name '{name}' is not unique")
        else:
            seen.add(name)
        if "image" in container and not isinstance(container["image"], str):
            problems.append(f"{CONTAINERS_KEY}[{index}].image must be a string")
    return problems


def find_container(document: dict[str, Any], container_name: str) -> int:
    """Return the index of the single container named ``container_name``.

    Raises:
        PatchTargetNotFound: If no container has that name
        PatchAmbiguous: If more than one container has that name
    """
    containers = document.get(CONTAINERS_KEY)
    if not isinstance(containers, list):
        raise DefinitionInvalid(f"'{CONTAINERS_KEY}' must be a list")

    matches = [
        index
        for index, container in enumerate(containers)
        if isinstance(container, dict) and container.get("name") == container_name
    ]
    names = [c.get("name") for c in containers if isinstance(c, dict)]
    if not matches:
        raise PatchTargetNotFound(
            f"No container named '{container_name}' in definition",
            {"container": container_name, "available": names},
        )
    if len(matches) > 1:
        raise PatchAmbiguous(
            f"{len(matches)} containers named '{container_name}' in definition",
            {"container": container_name, "indexes": matches},
        )
    return matches[0]


def patch_document(
    document: dict[str, Any], container_name: str, image: str
) -> dict[str, Any]:
    """Return a copy of ``document`` with one container's image replaced."""
    index = find_container(document, container_name)
    patched = copy.deepcopy(document)
    patched[CONTAINERS_KEY][index]["image"] = image
    return patched


def patch(
    template_path: Path, container_name: str, published: PublishedReference
) -> ResourceDefinition:
    """Patch a definition template with a published image.

    Args:
        template_path: Path to the environment's definition.json
        container_name: Exact name of the container entry to patch
        published: Published reference; its revision image is used

    Returns:
        Validated ResourceDefinition

    Raises:
        PatchTargetNotFound: If the named container is absent
        PatchAmbiguous: If the name matches more than one container
        DefinitionInvalid: If the template or the result has the wrong shape
    """
    document = load_template(template_path)
    image = published.revision_image
    if image.rsplit(":", 1)[-1] == LATEST_TAG:
        raise DefinitionInvalid("Refusing to deploy a mutable 'latest' reference", {"image": image})

    patched = patch_document(document, container_name, image)

    problems = validate_definition(patched)
    if problems:
        raise DefinitionInvalid(
            f"Definition failed validation: {problems[0]}",
            {"path": str(template_path), "problems": problems},
        )

    logger.info("Patched container '%s' in %s to %s", container_name, template_path, image)
    return ResourceDefinition(
        family=patched["family"],
        container_name=container_name,
        image=image,
        document=patched,
    )


def write_definition(definition: ResourceDefinition, path: Path) -> Path:
    """Write a rendered definition, e.g. into the run directory."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(definition.to_json())
    return path
